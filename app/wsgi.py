"""WSGI entry point: ``flask --app app.wsgi run`` or any WSGI server."""
from app.flask_app import create_app

app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)

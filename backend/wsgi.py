# Overview: WSGI entry point; FLASK_APP target for the CLI and for gunicorn.

from storefront import create_app

app = create_app()

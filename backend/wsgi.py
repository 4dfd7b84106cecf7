# Overview: WSGI entrypoint (FLASK_APP=wsgi.py).

from playtime import create_app

app = create_app()

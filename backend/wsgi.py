# backend/wsgi.py
from bistro import create_app

app = create_app()

# backend/wsgi.py
from campus_store import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)

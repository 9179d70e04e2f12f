"""Local development entry point.

Usage:
    python run.py

Reads configuration from a .env file in the project root.
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from archalley import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5000)

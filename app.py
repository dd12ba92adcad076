"""
WSGI entrypoint for the SmartGCode pendant API.

Exports the Flask app instance as 'app' for gunicorn/Vercel style hosts.
"""

from pendant_gui_app import app

if __name__ == '__main__':
    # For local testing with: python app.py
    import os
    port = int(os.environ.get('PORT', 8080))
    app.run(host='0.0.0.0', port=port, debug=True)

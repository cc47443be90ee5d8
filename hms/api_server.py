"""
HMS API Server.

Entry point that creates the Flask app via the application factory.

    gunicorn -c gunicorn.conf.py hms.api_server:app
"""

import logging
import os

from hms.app import create_app

# Create the application
app = create_app()


if __name__ == '__main__':
    logger = logging.getLogger(__name__)
    port = int(os.getenv('PORT', '5000'))
    logger.info(f"Starting HMS API on port {port}...")
    app.run(host=os.getenv('HOST', '127.0.0.1'), port=port, debug=False)

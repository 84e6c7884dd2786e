"""
Main entry point for the Gift Explanation Study

This file provides a clean entry point for running the application
from the root directory while keeping the gift_study/ package structure.
"""

from gift_study.app import create_app

app = create_app()

if __name__ == '__main__':
    # Bind to 0.0.0.0 so the container port is reachable from host
    app.run(debug=True, host='0.0.0.0', port=5002)

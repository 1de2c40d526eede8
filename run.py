#!/usr/bin/env python3
"""
Main entry point for running the Cinematch Flask application.
"""

from cinematch.app import app

if __name__ == "__main__":
    app.run(debug=True)

"""
Get Me A Chai Starter
=====================

A ready-to-run Flask application with every Get Me A Chai module enabled.

Run with:
    python app.py

Visit:
    http://localhost:5000/health          - Health check
    http://localhost:5000/api/campaigns/list - Public campaign listing
"""

from flask import Flask, jsonify
from getmeachai import GetMeAChai

# Create Flask app
app = Flask(__name__)

# Initialize Get Me A Chai - this registers all modules automatically
getmeachai = GetMeAChai(app)


# =============================================================================
# Your Routes - Add your own routes below
# =============================================================================

@app.route('/')
def index():
    """Which modules are live"""
    return jsonify({
        'name': app.config['APP_NAME'],
        'modules': getmeachai.get_registered_modules(),
    })


# =============================================================================
# Run the app
# =============================================================================

if __name__ == '__main__':
    port = app.config.get('PORT', 5000)
    print("\n" + "=" * 60)
    print(app.config['APP_NAME'])
    print("=" * 60)
    print(f"Health:          http://localhost:{port}/health")
    print(f"Campaigns:       http://localhost:{port}/api/campaigns/list")
    print(f"Trending:        http://localhost:{port}/api/campaigns/trending")
    print("=" * 60 + "\n")

    app.run(host='0.0.0.0', port=port, debug=app.config.get('ENV') != 'production')

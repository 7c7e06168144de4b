"""
WSGI entry point
"""
import os
from ispmanager import create_app

# Use environment-provided key matching ispmanager.config map or default to 'production'
config_name = os.environ.get('FLASK_ENV', 'production')
if config_name == 'production':
    from ispmanager.config import ProductionConfig
    ProductionConfig.validate()

app = create_app(config_name)

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5000)

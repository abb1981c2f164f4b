# module agrimarket.app
from agrimarket.app_setup.factory import create_app

# App globale
app = create_app()

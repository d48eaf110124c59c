import os
from quickcart import create_app, seed_reference_data

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# Tables and the global VAT rates / product types must exist before the
# first request; merchants and their catalogs are created through the API.
with app.app_context():
    seed_reference_data()

if __name__ == "__main__":
    app.run()

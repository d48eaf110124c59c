import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()

# Czech VAT rates and the fixed product types that use them
DEFAULT_VAT_RATES = [
    ('Základní', '21.00'),
    ('Snížená', '12.00'),
    ('Nulová', '0.00'),
]
DEFAULT_PRODUCT_TYPES = [
    ('Pečivo', 'Snížená'),
    ('Ovoce a zelenina', 'Snížená'),
    ('Mléčné výrobky', 'Snížená'),
    ('Maso a uzeniny', 'Snížená'),
    ('Nápoje', 'Základní'),
    ('Alkohol', 'Základní'),
    ('Drogerie', 'Základní'),
    ('Ostatní', 'Základní'),
]


def create_app(config_name='default'):
    """Application factory: creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from quickcart.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from quickcart.main import main as main_blueprint
    app.register_blueprint(main_blueprint)

    from quickcart.auth import auth as auth_blueprint
    app.register_blueprint(auth_blueprint, url_prefix='/auth')

    from quickcart.billing import pos as pos_blueprint
    app.register_blueprint(pos_blueprint, url_prefix='/pos')

    from quickcart.inventory import inventory as inventory_blueprint
    app.register_blueprint(inventory_blueprint, url_prefix='/inventory')

    from quickcart.reporting import reporting as reporting_blueprint
    app.register_blueprint(reporting_blueprint, url_prefix='/reporting')

    register_error_handlers(app)

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    # ── ProxyFix (HTTPS termination at the load balancer) ─────────
    if not app.config.get('TESTING'):
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app


def register_error_handlers(app):
    """Every error leaves the API as JSON: {"error": ..., "details"?: ...}."""
    from quickcart.errors import PosError, PersistenceError

    @app.errorhandler(PosError)
    def pos_error(e):
        if isinstance(e, PersistenceError):
            app.logger.error(f"Persistence failure: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(401)
    def unauthorized(e):
        return jsonify({'error': 'Authentication required.'}), 401

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({'error': 'Access denied.'}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found.'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'Method not allowed.'}), 405

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        app.logger.error(f"Unhandled error: {getattr(e, 'original_exception', e)!r}")
        return jsonify({'error': 'Internal server error.'}), 500


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all tables and seed VAT rates and product types."""
        seeded = seed_reference_data()
        click.echo('✅  Database tables created.')
        if seeded:
            click.echo(f'✅  Seeded {seeded} VAT rates / product types.')
        else:
            click.echo('ℹ️   Reference data already present.')

    @app.cli.command('show-sequences')
    def show_sequences():
        """Show current receipt sequence counters (diagnostic)."""
        from quickcart.billing.models import ReceiptSequence
        rows = ReceiptSequence.query.order_by(
            ReceiptSequence.merchant_id.asc(), ReceiptSequence.year.desc()
        ).all()
        if not rows:
            click.echo('No sequence rows found. No sale has been finalized yet.')
            return
        click.echo(f'{"Merchant":<10} {"Year":<8} {"Last Seq":<12} {"Next Receipt"}')
        click.echo('─' * 45)
        for row in rows:
            next_receipt = f'{row.year}-{row.last_seq + 1:04d}'
            click.echo(f'{row.merchant_id:<10} {row.year:<8} {row.last_seq:<12} {next_receipt}')

    @app.cli.command('seed-merchant')
    @click.option('--ico',      prompt='IČO',          help='8-digit company id')
    @click.option('--name',     prompt='Company name', help='Company name')
    @click.option('--address',  prompt='Address',      help='Company address')
    @click.option('--email',    prompt='Email',        help='Login email')
    @click.option('--password', prompt=True, hide_input=True,
                  confirmation_prompt=True, help='Login password')
    def seed_merchant(ico, name, address, email, password):
        """Create a merchant account."""
        from quickcart.auth.models import Merchant
        from quickcart.auth.validators import validate_registration, parse_registration

        data = {'ico': ico, 'company_name': name, 'company_address': address,
                'email': email, 'password': password}
        errors = validate_registration(data)
        if errors:
            for field, message in errors.items():
                click.echo(f'⚠️  {field}: {message}')
            return

        fields = parse_registration(data)
        if Merchant.query.filter_by(email=fields['email']).first():
            click.echo(f'⚠️  Merchant "{fields["email"]}" already exists.')
            return

        merchant = Merchant(**fields)
        merchant.set_password(password)
        db.session.add(merchant)
        db.session.commit()
        click.echo(f'✅  Merchant "{merchant.email}" created successfully.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate database with a demo merchant, catalog and fast menu."""
        from decimal import Decimal
        from quickcart.auth.models import Merchant
        from quickcart.inventory.models import Product, ProductType, FastMenuItem, UnitKind

        click.echo("🌱 Seeding demo data...")
        seed_reference_data()

        merchant = Merchant.query.filter_by(email='demo@quickcart.cz').first()
        if merchant is None:
            merchant = Merchant(ico='12345678', company_name='Demo Potraviny s.r.o.',
                                company_address='Náměstí 1, 110 00 Praha',
                                email='demo@quickcart.cz')
            merchant.set_password('demo123')
            db.session.add(merchant)
            db.session.commit()
            click.echo("✅ Merchant created (demo@quickcart.cz / demo123).")

        types = {t.name: t for t in ProductType.query.all()}
        demo_products = [
            ('Rohlík',        '8590001000011', '2.90',  UnitKind.countable, 'Pečivo'),
            ('Chléb kmínový', '8590001000028', '39.90', UnitKind.countable, 'Pečivo'),
            ('Jablka',        '2000000000015', '34.90', UnitKind.weighed,   'Ovoce a zelenina'),
            ('Banány',        '2000000000022', '32.90', UnitKind.weighed,   'Ovoce a zelenina'),
            ('Mléko 1 l',     '8590001000035', '24.90', UnitKind.countable, 'Mléčné výrobky'),
            ('Minerálka 1,5 l', '8590001000042', '17.90', UnitKind.countable, 'Nápoje'),
            ('Pivo 0,5 l',    '8590001000059', '21.90', UnitKind.countable, 'Alkohol'),
        ]
        created = 0
        for name, barcode, price, kind, type_name in demo_products:
            if Product.query.filter_by(merchant_id=merchant.id, barcode=barcode).first():
                continue
            product = Product(merchant_id=merchant.id, name=name, barcode=barcode,
                              price=Decimal(price), unit_kind=kind,
                              product_type_id=types[type_name].id)
            db.session.add(product)
            db.session.flush()
            if kind is UnitKind.weighed:
                db.session.add(FastMenuItem(merchant_id=merchant.id, product_id=product.id,
                                            product_type_id=product.product_type_id,
                                            display_order=created))
            created += 1
        db.session.commit()
        click.echo(f"✅ {created} products seeded.")
        click.echo("✅ Demo seed complete.")


def seed_reference_data() -> int:
    """Create tables plus the global VAT rates and product types. Idempotent."""
    from decimal import Decimal
    from quickcart.inventory.models import Vat, ProductType

    db.create_all()
    added = 0

    rates = {v.name: v for v in Vat.query.all()}
    for name, rate in DEFAULT_VAT_RATES:
        if name not in rates:
            rates[name] = Vat(name=name, rate=Decimal(rate))
            db.session.add(rates[name])
            added += 1
    db.session.flush()

    existing = {t.name for t in ProductType.query.all()}
    for name, vat_name in DEFAULT_PRODUCT_TYPES:
        if name not in existing:
            db.session.add(ProductType(name=name, vat_id=rates[vat_name].id))
            added += 1

    db.session.commit()
    return added

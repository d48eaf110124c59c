from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from quickcart import db


class Merchant(db.Model):
    """
    A registered business (tenant). Every product, fast-menu button
    and order belongs to exactly one merchant.
    """
    __tablename__ = 'merchants'

    id              = db.Column(db.Integer, primary_key=True)
    ico             = db.Column(db.String(8), nullable=False, index=True)    # company id
    dic             = db.Column(db.String(14), nullable=True)                # VAT id
    company_name    = db.Column(db.String(200), nullable=False)
    company_address = db.Column(db.String(255), nullable=True)
    email           = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash   = db.Column(db.String(256), nullable=False)
    created_at      = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # ── Password helpers ──────────────────────────────────────────
    def set_password(self, plain_password: str) -> None:
        """Hash and store the password. Never stores plain text."""
        self.password_hash = generate_password_hash(plain_password)

    def check_password(self, plain_password: str) -> bool:
        """Return True if the supplied password matches the stored hash."""
        return check_password_hash(self.password_hash, plain_password)

    def to_dict(self) -> dict:
        return {
            'id':              self.id,
            'ico':             self.ico,
            'dic':             self.dic,
            'company_name':    self.company_name,
            'company_address': self.company_address,
            'email':           self.email,
        }

    def __repr__(self) -> str:
        return f"<Merchant {self.email!r} ico={self.ico!r}>"

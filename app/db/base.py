# Esse arquivo existe apenas para reunir todos os modelos em um único lugar
# para que o Alembic e o create_all possam encontrá-los.

from app.db.base_class import Base
from app.models.user import User
from app.models.document import Document

from sqlalchemy.orm import DeclarativeBase, declared_attr

class Base(DeclarativeBase):
    """
    Classe base para todos os modelos SQLAlchemy.
    O nome da tabela é gerado a partir do nome da classe (User -> users).
    """
    
    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower() + "s"

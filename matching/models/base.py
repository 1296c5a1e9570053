# Re-export the main Base class from db.py for matching models
# so every table shares one metadata (created by db.init_db)
from db import Base

__all__ = ["Base"]

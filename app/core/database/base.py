# File: app/core/database/base.py

from sqlalchemy.orm import declarative_base

# The shared registry. Storage folders, storage files and jobs all inherit from this.
Base = declarative_base()

# tradedesk/database/base.py

from sqlalchemy.orm import declarative_base

# Define the Base class for declarative models.
# All SQLAlchemy models in the application inherit from this Base.
Base = declarative_base()

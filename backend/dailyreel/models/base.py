"""Declarative base shared by all models"""
import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_id() -> str:
    """Server-assigned opaque record id"""
    return str(uuid.uuid4())

"""Declarative base shared by all StockSync models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass

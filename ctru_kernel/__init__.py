"""
CTRU Kernel - unit cost (Costo Total Real por Unidad) persistence core.

Provides:
- Unit, expense, and product cost aggregate persistence
- Atomic recalculation batches over a SQLAlchemy session
- Typed exceptions and structured logging shared by all layers
"""

__version__ = "0.1.0"

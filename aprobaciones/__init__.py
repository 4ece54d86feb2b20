"""
Motor de aprobaciones: definiciones de workflow en forma de grafo,
instancias por entidad y bitácora auditable de transiciones.
"""

__version__ = "0.1.0"

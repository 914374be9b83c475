"""
=============================================================================
STORAGE.PY — Gateway de persistencia (documentos por usuario)
=============================================================================
Almacén clave-valor sobre SQLAlchemy. El resto de la app solo ve texto:

  read_all(owner)          → {clave: texto}   (las claves sin fila no aparecen)
  write(owner, documents)  → True si se guardó, False si la BD falló

Una escritura es una transacción: o se guardan todos los documentos
o ninguno. Los errores de BD no se propagan; se registran y se devuelve
False para que el store siga trabajando en memoria.
"""

import logging
from typing import Callable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import SessionLocal
from models import StoredDocument

logger = logging.getLogger("habitledger.storage")


class DocumentStore:

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def read_all(self, owner: str) -> dict[str, str]:
        db = self.session_factory()
        try:
            rows = db.query(StoredDocument).filter(StoredDocument.owner == owner).all()
            return {row.key: row.payload for row in rows if row.payload is not None}
        finally:
            db.close()

    def write(self, owner: str, documents: Mapping[str, str]) -> bool:
        if not documents:
            return True

        db = self.session_factory()
        try:
            existing = {
                row.key: row
                for row in db.query(StoredDocument).filter(
                    StoredDocument.owner == owner,
                    StoredDocument.key.in_(list(documents)),
                ).all()
            }
            for key, payload in documents.items():
                row = existing.get(key)
                if row is None:
                    db.add(StoredDocument(owner=owner, key=key, payload=payload))
                else:
                    row.payload = payload
            db.commit()
            logger.debug(f"💾 Guardado [{owner}]: {', '.join(sorted(documents))}")
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error de BD guardando {sorted(documents)} de {owner}: {e}")
            return False
        finally:
            db.close()


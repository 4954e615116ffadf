"""
Pattern Repository.

Le repository fournit une abstraction sur la couche de persistance.
Il expose une interface de type collection (add, get, delete) qui
masque les détails de l'accès aux données.

Un seul repository générique sert toutes les entités : le
SqlAlchemyRepository est paramétré par la classe qu'il gère.
Les lectures complexes (recherches, tableaux de bord) passent
par le module views, pas par ici.
"""

from __future__ import annotations

import abc
from typing import Any, Optional

from sqlalchemy.orm import Session


class AbstractRepository(abc.ABC):
    """
    Interface abstraite du repository.

    Les méthodes publiques gèrent le tracking via `seen`, puis
    délèguent aux méthodes abstraites préfixées _ que les
    sous-classes implémentent.
    """

    def __init__(self) -> None:
        # `seen` trace les entités consultées pendant la transaction,
        # ce qui permet au Unit of Work de collecter leurs événements.
        self.seen: set[Any] = set()

    def add(self, entité: Any) -> None:
        self._add(entité)
        self.seen.add(entité)

    def get(self, id: int) -> Optional[Any]:
        entité = self._get(id)
        if entité is not None:
            self.seen.add(entité)
        return entité

    def get_par(self, **critères: Any) -> Optional[Any]:
        """Première entité dont les attributs valent `critères`, ou None."""
        entité = self._get_par(**critères)
        if entité is not None:
            self.seen.add(entité)
        return entité

    def delete(self, entité: Any) -> None:
        self._delete(entité)

    @abc.abstractmethod
    def _add(self, entité: Any) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, id: int) -> Optional[Any]:
        raise NotImplementedError

    @abc.abstractmethod
    def _get_par(self, **critères: Any) -> Optional[Any]:
        raise NotImplementedError

    @abc.abstractmethod
    def _delete(self, entité: Any) -> None:
        raise NotImplementedError


class SqlAlchemyRepository(AbstractRepository):
    """Implémentation concrète du repository avec SQLAlchemy."""

    def __init__(self, session: Session, classe: type):
        super().__init__()
        self.session = session
        self.classe = classe

    def _add(self, entité: Any) -> None:
        self.session.add(entité)

    def _get(self, id: int) -> Optional[Any]:
        return self.session.get(self.classe, id)

    def _get_par(self, **critères: Any) -> Optional[Any]:
        return self.session.query(self.classe).filter_by(**critères).first()

    def _delete(self, entité: Any) -> None:
        self.session.delete(entité)

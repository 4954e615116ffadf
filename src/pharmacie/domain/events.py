"""
Events du domaine.

Les events représentent des faits qui se sont produits dans le système.
Ils sont immuables et nommés au passé.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pharmacie.domain.model import InstantanéMédicament


class Event:
    """Classe de base pour tous les events du domaine."""
    pass


@dataclass(frozen=True)
class InventaireModifié(Event):
    """
    Un médicament a été créé, ou l'un de ses champs d'inventaire
    (stock, seuil, péremption, nom, prix) a changé.
    """

    instantané: InstantanéMédicament

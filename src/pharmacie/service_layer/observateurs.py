"""
Alertes d'inventaire (pattern Observer).

Le SujetInventaire tient la liste des observateurs enregistrés
et leur diffuse, dans l'ordre d'enregistrement, l'instantané
de chaque médicament dont l'inventaire a changé.

Deux règles existent :
- RègleStockBas : email à l'administrateur quand stock <= seuil de réappro
- RèglePéremption : SMS quand la péremption tombe dans la fenêtre d'alerte
  (médicaments déjà périmés compris)

Un observateur qui lève une exception est journalisé puis ignoré :
les suivants reçoivent quand même l'instantané.
"""

from __future__ import annotations

import abc
import logging
import threading
from datetime import date
from typing import TYPE_CHECKING, Callable

from pharmacie.adapters.notifications import TypeCanal

if TYPE_CHECKING:
    from pharmacie.adapters.notifications import RépartiteurNotifications
    from pharmacie.domain.model import InstantanéMédicament

logger = logging.getLogger(__name__)


class AbstractObservateur(abc.ABC):
    """Règle sans état qui décide si un instantané mérite une alerte."""

    @abc.abstractmethod
    def evaluate(self, instantané: InstantanéMédicament) -> None:
        raise NotImplementedError


class RègleStockBas(AbstractObservateur):
    SUJET = "Low Stock Alert"

    def __init__(self, répartiteur: RépartiteurNotifications, destinataire: str):
        self.répartiteur = répartiteur
        self.destinataire = destinataire

    def evaluate(self, instantané: InstantanéMédicament) -> None:
        if instantané.stock is None or instantané.seuil_réappro is None:
            return
        if instantané.stock > instantané.seuil_réappro:
            return

        message = (
            f"LOW STOCK ALERT: {instantané.nom} is running low! "
            f"Current stock: {instantané.stock}, Reorder Level: {instantané.seuil_réappro}"
        )
        canal = self.répartiteur.resolve(TypeCanal.EMAIL)
        if not canal.send(self.destinataire, self.SUJET, message):
            logger.warning("Alerte de stock bas non délivrée à %s : %s", self.destinataire, message)
            return
        logger.info(message)


class RèglePéremption(AbstractObservateur):
    SUJET = "Medicine Expiry Alert"

    def __init__(
        self,
        répartiteur: RépartiteurNotifications,
        destinataire: str,
        fenêtre_jours: int = 30,
        aujourd_hui: Callable[[], date] = date.today,
    ):
        self.répartiteur = répartiteur
        self.destinataire = destinataire
        self.fenêtre_jours = fenêtre_jours
        self.aujourd_hui = aujourd_hui

    def evaluate(self, instantané: InstantanéMédicament) -> None:
        if instantané.date_péremption is None:
            return

        jours_restants = (instantané.date_péremption - self.aujourd_hui()).days
        if jours_restants > self.fenêtre_jours:
            return

        if jours_restants < 0:
            statut = "EXPIRED"
            échéance = f"{abs(jours_restants)} days ago"
        else:
            statut = "EXPIRING SOON"
            échéance = f"in {jours_restants} days"

        message = (
            f"{statut} ALERT: {instantané.nom} {statut.lower()} {échéance}! "
            f"Expiry date: {instantané.date_péremption.isoformat()}, "
            f"Current stock: {instantané.stock}"
        )
        canal = self.répartiteur.resolve(TypeCanal.SMS)
        if not canal.send(self.destinataire, self.SUJET, message):
            logger.warning("Alerte de péremption non délivrée à %s : %s", self.destinataire, message)
            return
        logger.info(message)


class SujetInventaire:
    """
    Registre des observateurs et diffusion des changements d'inventaire.

    Créé une seule fois par le bootstrap puis injecté dans le message bus.
    L'enregistrement compare les observateurs par identité (`is`),
    jamais par égalité de valeur.
    """

    def __init__(self) -> None:
        self._observateurs: list[AbstractObservateur] = []
        self._verrou = threading.Lock()

    @property
    def observateurs(self) -> tuple[AbstractObservateur, ...]:
        with self._verrou:
            return tuple(self._observateurs)

    def register(self, observateur: AbstractObservateur) -> None:
        with self._verrou:
            if not any(o is observateur for o in self._observateurs):
                self._observateurs.append(observateur)

    def unregister(self, observateur: AbstractObservateur) -> None:
        with self._verrou:
            for i, o in enumerate(self._observateurs):
                if o is observateur:
                    del self._observateurs[i]
                    return

    def notify(self, instantané: InstantanéMédicament) -> None:
        """
        Appelle evaluate() sur chaque observateur, dans l'ordre
        d'enregistrement, sur le thread appelant.

        On itère sur une copie : un register/unregister concurrent
        ne modifie pas une diffusion déjà commencée.
        """
        for observateur in self.observateurs:
            try:
                observateur.evaluate(instantané)
            except Exception:
                logger.exception(
                    "L'observateur %s a échoué pour %s", type(observateur).__name__, instantané.nom
                )

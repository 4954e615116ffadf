"""
Message Bus.

Le message bus est le point central de dispatch des messages
(commands et events) vers leurs handlers respectifs.

Fonctionnement :
1. Une command entre dans le bus (écriture demandée par l'API)
2. Son handler unique est exécuté, puis le Unit of Work
   remet au bus les événements émis pendant la transaction
3. Chaque événement est dispatché vers ses handlers (par exemple
   la diffusion d'InventaireModifié aux règles d'alerte)

Différences clés :
- Une command a exactement UN handler ; l'erreur remonte à l'appelant
- Un event peut avoir 0 à N handlers ; les erreurs sont loggées mais ne
  remontent jamais : une alerte ratée n'annule pas l'écriture
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Union

from pharmacie.domain import commands, events
from pharmacie.service_layer import unit_of_work

logger = logging.getLogger(__name__)

Message = Union[commands.Command, events.Event]


class MessageBus:
    """
    Message Bus avec injection de dépendances.

    Les dépendances (uow, sujet_inventaire, etc.) sont injectées
    à la construction et transmises aux handlers par introspection
    de leurs signatures.
    """

    def __init__(
        self,
        uow: unit_of_work.AbstractUnitOfWork,
        event_handlers: dict[type[events.Event], list[Callable]],
        command_handlers: dict[type[commands.Command], Callable],
        dependencies: dict[str, Any] | None = None,
    ):
        self.uow = uow
        self.event_handlers = event_handlers
        self.command_handlers = command_handlers
        self.dependencies = {"uow": uow, **(dependencies or {})}

    def handle(self, message: Message) -> list[Any]:
        """
        Traite un message et tous les événements qui en découlent.

        Retourne les résultats des command handlers (en pratique
        un seul : l'id créé, ou None).
        """
        # File locale à l'appel : le bus est partagé entre les threads des requêtes.
        queue: list[Message] = [message]
        results: list[Any] = []
        while queue:
            message = queue.pop(0)
            if isinstance(message, events.Event):
                queue.extend(self._handle_event(message))
            elif isinstance(message, commands.Command):
                result, nouveaux = self._handle_command(message)
                results.append(result)
                queue.extend(nouveaux)
            else:
                raise ValueError(f"Message de type inconnu : {type(message)}")
        return results

    def _handle_event(self, event: events.Event) -> list[Message]:
        nouveaux: list[Message] = []
        for handler in self.event_handlers.get(type(event), []):
            try:
                logger.debug("Traitement de l'event %s avec %s", event, handler.__name__)
                self._call_handler(handler, event)
                nouveaux.extend(self.uow.collect_new_events())
            except Exception:
                logger.exception("Erreur lors du traitement de l'event %s", event)
        return nouveaux

    def _handle_command(self, command: commands.Command) -> tuple[Any, list[Message]]:
        logger.debug("Traitement de la command %s", command)
        handler = self.command_handlers.get(type(command))
        if handler is None:
            raise ValueError(f"Aucun handler pour la command {type(command).__name__}")
        result = self._call_handler(handler, command)
        return result, list(self.uow.collect_new_events())

    def _call_handler(self, handler: Callable, message: Message) -> Any:
        """
        Appelle un handler en injectant ses dépendances.

        Le premier paramètre est toujours le message ; les suivants
        sont résolus par nom dans self.dependencies.
        """
        _, *noms = inspect.signature(handler).parameters
        kwargs = {nom: self.dependencies[nom] for nom in noms if nom in self.dependencies}
        return handler(message, **kwargs)

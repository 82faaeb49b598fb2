"""
Message Bus.

Point central de dispatch des messages (commands et events) vers
leurs handlers :
1. Un message entre dans le bus
2. Le bus trouve le(s) handler(s) correspondant(s)
3. Le handler est exécuté
4. Les événements émis pendant l'exécution sont collectés et traités à leur tour

- Une command a exactement UN handler ; l'erreur remonte à l'appelant
- Un event peut avoir 0 à N handlers ; les erreurs sont loggées mais ne bloquent pas
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Union

from batch_inventory.domain import commands, events
from batch_inventory.service_layer import unit_of_work
from batch_inventory.service_layer.concurrency import run_with_retry

logger = logging.getLogger(__name__)

Message = Union[commands.Command, events.Event]


class MessageBus:
    """
    Les dépendances (uow, notifications, clock...) sont injectées à la
    construction et transmises aux handlers par introspection de
    leurs signatures.
    """

    def __init__(
        self,
        uow: unit_of_work.AbstractUnitOfWork,
        event_handlers: dict[type[events.Event], list[Callable]],
        command_handlers: dict[type[commands.Command], Callable],
        dependencies: dict[str, Any] | None = None,
        retry_attempts: int = 3,
    ):
        self.uow = uow
        self.event_handlers = event_handlers
        self.command_handlers = command_handlers
        self.dependencies = dependencies or {}
        self.retry_attempts = retry_attempts

    def handle(self, message: Message) -> list[Any]:
        """
        Traite un message et tous les événements qui en découlent.

        Retourne les résultats des commands traitées, dans l'ordre.
        """
        # file locale à l'appel : le bus est partagé entre les threads
        queue: list[Message] = [message]
        results: list[Any] = []
        while queue:
            message = queue.pop(0)
            if isinstance(message, events.Event):
                self._handle_event(message, queue)
            elif isinstance(message, commands.Command):
                result = self._handle_command(message, queue)
                results.append(result)
            else:
                raise ValueError(f"Message de type inconnu : {type(message)}")
        return results

    def _handle_event(self, event: events.Event, queue: list[Message]) -> None:
        for handler in self.event_handlers.get(type(event), []):
            try:
                logger.debug("Traitement de l'event %s avec %s", event, handler)
                self._call_handler(handler, event)
                queue.extend(self.uow.collect_new_events())
            except Exception:
                logger.exception("Erreur lors du traitement de l'event %s", event)

    def _handle_command(self, command: commands.Command, queue: list[Message]) -> Any:
        """
        Dispatch une command vers son unique handler.

        Le handler est relancé sur conflit de base (OperationalError) ;
        toute autre erreur remonte directement à l'appelant.
        """
        logger.debug("Traitement de la command %s", command)
        handler = self.command_handlers.get(type(command))
        if handler is None:
            raise ValueError(f"Aucun handler pour la command {type(command)}")
        result = run_with_retry(
            lambda: self._call_handler(handler, command),
            attempts=self.retry_attempts,
        )
        queue.extend(self.uow.collect_new_events())
        return result

    def _call_handler(self, handler: Callable, message: Message) -> Any:
        """
        Appelle un handler en injectant les dépendances nécessaires.

        Le premier paramètre est toujours le message lui-même ; les
        suivants sont résolus par nom dans le dictionnaire de
        dépendances ou via self.uow.
        """
        params = inspect.signature(handler).parameters
        first = next(iter(params))
        kwargs: dict[str, Any] = {}
        for name in params:
            if name == first:
                continue
            if name == "uow":
                kwargs[name] = self.uow
            elif name in self.dependencies:
                kwargs[name] = self.dependencies[name]

        return handler(message, **kwargs)

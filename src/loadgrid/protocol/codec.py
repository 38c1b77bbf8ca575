"""JSON frame codec for the coordinator management socket.

Every frame is a JSON array. Outbound arrays mix objects
(``{"start_run": plan}``, ``{"remove_report": {"id": ...}}``) with the bare
literal ``"abort_run"``. Inbound arrays hold tagged objects whose payloads
are validated by a per-protocol parser table.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from loadgrid._internal.errors import DecodeError
from loadgrid._internal.logging import get_logger
from loadgrid.protocol.commands import AbortRun, RemoveReport, StartRun
from loadgrid.protocol.envelopes import parse_init, parse_legacy_notify, parse_notify

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from loadgrid._internal.types import Frame
    from loadgrid.protocol.commands import Command
    from loadgrid.protocol.envelopes import Envelope

    EnvelopeParser = Callable[[Any], list[Envelope]]

logger = get_logger("protocol.codec")

ABORT_RUN_LITERAL = "abort_run"

UNIFIED_PARSERS: dict[str, EnvelopeParser] = {
    "notify": parse_notify,
}

LEGACY_PARSERS: dict[str, EnvelopeParser] = {
    "init": parse_init,
    "notify": parse_legacy_notify,
}


class Codec:
    """Encodes command batches and decodes envelope frames.

    Attributes:
        start_run_tag: Tag used for the start-run command (``start_run``
            on current coordinators, ``run_plan`` on legacy ones).
    """

    def __init__(
        self,
        parsers: Mapping[str, EnvelopeParser],
        *,
        start_run_tag: str = "start_run",
    ) -> None:
        self._parsers = dict(parsers)
        self.start_run_tag = start_run_tag

    @property
    def tags(self) -> frozenset[str]:
        """Inbound tags this codec recognizes."""
        return frozenset(self._parsers)

    def encode(self, commands: Iterable[Command]) -> Frame:
        """Render *commands* as one JSON array frame.

        Args:
            commands: Commands to send, in order.

        Returns:
            The frame text.

        Raises:
            TypeError: If an element is not a known command type.
        """
        return json.dumps([self._encode_command(command) for command in commands])

    def _encode_command(self, command: Command) -> Any:
        if isinstance(command, StartRun):
            return {self.start_run_tag: command.plan.to_dict()}
        if isinstance(command, AbortRun):
            return ABORT_RUN_LITERAL
        if isinstance(command, RemoveReport):
            return {"remove_report": {"id": command.report_id}}
        msg = f"Cannot encode {type(command).__name__} as a command"
        raise TypeError(msg)

    def decode(self, frame: Frame | bytes) -> list[Envelope]:
        """Parse *frame* into envelopes, preserving array order.

        Elements with an unknown tag or an invalid payload are logged and
        skipped; the remaining elements are still decoded. A frame that is
        not a JSON array yields no envelopes.

        Args:
            frame: Raw frame text received from the coordinator.

        Returns:
            Decoded envelopes in array order.
        """
        try:
            elements = json.loads(frame)
        except (TypeError, ValueError) as exc:
            logger.warning("Dropping frame that is not valid JSON: %s", exc)
            return []

        if not isinstance(elements, list):
            logger.warning("Dropping frame that is not a JSON array: %s", type(elements).__name__)
            return []

        envelopes: list[Envelope] = []
        for index, element in enumerate(elements):
            try:
                envelopes.extend(self._decode_element(element))
            except DecodeError as exc:
                logger.warning("Skipping element %d of frame: %s", index, exc)
        return envelopes

    def _decode_element(self, element: object) -> list[Envelope]:
        if isinstance(element, str):
            msg = f"unrecognized literal {element!r}"
            raise DecodeError(msg)
        if not isinstance(element, dict) or not element:
            msg = f"element must be a tagged object, got {element!r}"
            raise DecodeError(msg)

        envelopes: list[Envelope] = []
        for tag, payload in element.items():
            parser = self._parsers.get(tag)
            if parser is None:
                # Tags from newer coordinators are expected; skip them alone
                logger.warning("Skipping unrecognized tag %r", tag)
                continue
            envelopes.extend(parser(payload))
        return envelopes


_unified_codec = Codec(UNIFIED_PARSERS)


def encode(commands: Iterable[Command]) -> Frame:
    """Encode *commands* with the unified protocol codec."""
    return _unified_codec.encode(commands)


def decode(frame: Frame | bytes) -> list[Envelope]:
    """Decode *frame* with the unified protocol codec."""
    return _unified_codec.decode(frame)

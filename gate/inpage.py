from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from gate.attachment import ProviderAttachmentManager
from gate.channel import CorrelationChannel
from gate.config import GateConfig
from shared.pipe import PostMessageBus

logger = logging.getLogger(__name__)


@dataclass
class InpageGate:
    channel: CorrelationChannel
    manager: ProviderAttachmentManager

    def shutdown(self) -> None:
        self.manager.detach()
        self.channel.close()


def install_gate(host: Any, bus: PostMessageBus, *, config: GateConfig | None = None) -> InpageGate:
    """
    Page-side entry point: open the stream towards the content script and
    start watching `host` for a provider to wrap. Must run inside the loop.
    """
    cfg = config or GateConfig.from_env()
    stream = bus.endpoint(cfg.inpage_name, cfg.content_script_name)
    channel = CorrelationChannel(stream, name=cfg.inpage_name)
    manager = ProviderAttachmentManager(host, channel, config=cfg)
    manager.start()
    logger.debug("inpage gate started (state=%s)", manager.state.value)
    return InpageGate(channel=channel, manager=manager)

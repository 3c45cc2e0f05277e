"""Page-level entry point wiring the extractor, manager and host together."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .dom import DocumentHost
from .extraction_manager import Consumer, ExtractionManager, SchedulingConfig
from .form_extractor import FormExtractor, now_ms
from .geometry import GeometryConfig
from .models import EXTRACT_FORMS, ExtractedFormSchema
from .scheduling import Scheduler
from .selector_generator import SelectorConfig

LOGGER = logging.getLogger(__name__)


class FormSchemaSession:
    def __init__(
        self,
        host: DocumentHost,
        consumer: Optional[Consumer] = None,
        *,
        geometry_config: Optional[GeometryConfig] = None,
        selector_config: Optional[SelectorConfig] = None,
        scheduling_config: Optional[SchedulingConfig] = None,
        scheduler: Optional[Scheduler] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = host
        self.logger = logger or LOGGER
        self.extractor = FormExtractor(
            host,
            geometry_config=geometry_config,
            selector_config=selector_config,
            logger=self.logger,
        )
        self.manager = ExtractionManager(
            self.extractor,
            host,
            consumer,
            config=scheduling_config,
            scheduler=scheduler,
            logger=self.logger,
        )
        self.initialized = False
        self.url = ""

    async def start(self) -> Optional[ExtractedFormSchema]:
        """Run the initial extraction, then follow mutations and visibility."""
        schema = await self.manager.force_extraction()
        if schema and schema.fields:
            self.url = schema.url
            self.logger.info("Found %s form fields on page load", len(schema.fields))
        else:
            self.logger.info("No form fields detected on page load")
        self.manager.start_observing()
        self.host.observe_visibility(self.manager.handle_visibility_change)
        self.initialized = True
        return schema

    async def handle_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        message_type = (message or {}).get("type")
        try:
            if message_type == EXTRACT_FORMS:
                schema = await self.manager.force_extraction()
                if schema is not None:
                    self.url = schema.url
                return {"success": True, "data": schema.to_dict() if schema else None}
            self.logger.warning("Unknown message type: %s", message_type)
            return {"success": False, "error": "Unknown message type"}
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Message handling failed: %s", exc)
            return {"success": False, "error": str(exc) or "Unknown error occurred"}

    def get_stats(self) -> Dict[str, Any]:
        return {
            "is_initialized": self.initialized,
            "extraction_stats": self.manager.get_stats(),
            "url": self.url,
            "timestamp": now_ms(),
        }

    async def close(self) -> None:
        await self.manager.close()
        self.initialized = False


__all__ = ["FormSchemaSession"]

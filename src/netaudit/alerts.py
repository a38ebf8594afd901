"""
Rule-driven alerts on scanned devices.

Rules are validated when they are added; a malformed rule is rejected
with InvalidRuleError. Evaluation never raises: a failing notification
handler is logged and the remaining rules still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from ._types import Device, now_utc
from .exceptions import InvalidRuleError
from .registry import KnownDeviceRegistry

logger = logging.getLogger(__name__)

SNMP_PORT = 161


class ConditionType(str, Enum):
    NEW_DEVICE = "new_device"
    PORT_OPEN = "port_open"
    SERVICE_DOWN = "service_down"
    SNMP_PUBLIC = "snmp_public"


@dataclass(frozen=True)
class AlertCondition:
    type: ConditionType
    port: Optional[int] = None
    service: Optional[str] = None


@dataclass(frozen=True)
class AlertRule:
    id: str
    name: str
    condition: AlertCondition
    notification_type: str = "log"


@dataclass
class Alert:
    rule_id: str
    rule_name: str
    device_ip: str
    device_name: str
    message: str
    timestamp: datetime = field(default_factory=now_utc)


NotificationHandler = Callable[[Alert], None]


def rule_from_dict(data: dict) -> AlertRule:
    """Build a rule from a plain mapping (e.g. a YAML config section)."""
    missing = [k for k in ("id", "name", "condition", "notification_type") if k not in data]
    if missing:
        raise InvalidRuleError(f"Alert rule missing fields: {missing}")

    cond = data["condition"]
    if not isinstance(cond, dict) or "type" not in cond:
        raise InvalidRuleError(f"Alert rule {data['id']} has no condition type")
    try:
        cond_type = ConditionType(cond["type"])
    except ValueError:
        raise InvalidRuleError(f"Unknown alert condition type: {cond['type']!r}")

    return AlertRule(
        id=str(data["id"]),
        name=str(data["name"]),
        condition=AlertCondition(
            type=cond_type,
            port=cond.get("port"),
            service=cond.get("service"),
        ),
        notification_type=str(data["notification_type"]),
    )


class AlertSystem:
    """Evaluate alert rules against devices and dispatch notifications."""

    def __init__(self, registry: Optional[KnownDeviceRegistry] = None):
        self.registry = registry
        self._rules: list[AlertRule] = []
        self._channels: dict[str, NotificationHandler] = {"log": self._log_alert}

    @property
    def rules(self) -> list[AlertRule]:
        return list(self._rules)

    def add_rule(self, rule: AlertRule) -> None:
        self._validate(rule)
        if any(r.id == rule.id for r in self._rules):
            raise InvalidRuleError(f"Duplicate alert rule id: {rule.id}")
        self._rules.append(rule)
        logger.info(f"Alert rule added: {rule.name}")

    def remove_rule(self, rule_id: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.id != rule_id]
        removed = len(self._rules) < before
        if removed:
            logger.info(f"Alert rule removed: {rule_id}")
        return removed

    def set_notification_channel(self, name: str, handler: NotificationHandler) -> None:
        if not callable(handler):
            raise InvalidRuleError(f"Notification handler for {name!r} is not callable")
        self._channels[name] = handler
        logger.info(f"Notification channel configured: {name}")

    def _validate(self, rule: AlertRule) -> None:
        if not rule.id or not rule.name:
            raise InvalidRuleError("Alert rule needs an id and a name")
        if not isinstance(rule.condition.type, ConditionType):
            raise InvalidRuleError(f"Unknown alert condition type: {rule.condition.type!r}")

        cond = rule.condition
        if cond.type == ConditionType.PORT_OPEN:
            if not isinstance(cond.port, int) or not 0 <= cond.port <= 65535:
                raise InvalidRuleError(f"Rule {rule.id}: port_open needs a valid port")
        if cond.type == ConditionType.SERVICE_DOWN and not cond.service:
            raise InvalidRuleError(f"Rule {rule.id}: service_down needs a service name")
        if cond.type == ConditionType.NEW_DEVICE and self.registry is None:
            raise InvalidRuleError(f"Rule {rule.id}: new_device needs a device registry")
        if rule.notification_type not in self._channels:
            raise InvalidRuleError(
                f"Rule {rule.id}: unknown notification channel {rule.notification_type!r}"
            )

    def check_device(self, device: Device, is_new: Optional[bool] = None) -> list[Alert]:
        """
        Evaluate every rule against a device and notify for each match.

        The device is recorded in the registry after evaluation, so a
        new_device rule fires once per device. `is_new` overrides the
        registry lookup, for callers that track new devices themselves.
        """
        if is_new is None and self.registry is not None:
            is_new = not self.registry.is_known(device)

        alerts = []
        for rule in list(self._rules):
            try:
                if not self._evaluate(rule.condition, device, is_new):
                    continue
                alert = Alert(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    device_ip=device.address,
                    device_name=device.hostname or "unknown",
                    message=self._message(rule.condition, device),
                )
                alerts.append(alert)
                self._channels[rule.notification_type](alert)
            except Exception as e:
                logger.error(f"Error evaluating alert rule {rule.id} on {device.address}: {e}")

        if self.registry is not None:
            self.registry.add(device)
        return alerts

    def _evaluate(self, cond: AlertCondition, device: Device, is_new: Optional[bool]) -> bool:
        if cond.type == ConditionType.NEW_DEVICE:
            return bool(is_new)
        if cond.type == ConditionType.PORT_OPEN:
            return cond.port in device.services
        if cond.type == ConditionType.SERVICE_DOWN:
            wanted = cond.service.lower()
            return not any(wanted in s.name.lower() for s in device.services.values())
        if cond.type == ConditionType.SNMP_PUBLIC:
            return SNMP_PORT in device.services
        return False

    @staticmethod
    def _message(cond: AlertCondition, device: Device) -> str:
        where = f"{device.hostname} ({device.address})"
        if cond.type == ConditionType.NEW_DEVICE:
            return f"New device detected: {where}"
        if cond.type == ConditionType.PORT_OPEN:
            return f"Port {cond.port} open on {where}"
        if cond.type == ConditionType.SERVICE_DOWN:
            return f"Service {cond.service} down on {where}"
        if cond.type == ConditionType.SNMP_PUBLIC:
            return f"Public SNMP detected on {where}"
        return f"Alert on device {where}"

    @staticmethod
    def _log_alert(alert: Alert) -> None:
        logger.warning(
            f"ALERT: {alert.rule_name} - Device: {alert.device_name} "
            f"({alert.device_ip}) - {alert.message}"
        )

"""Visitor attributes extracted from an incoming redirect request."""

from typing import Optional

from fastapi import Request
from user_agents import parse

from shortlink.enums import DeviceType
from shortlink.schemas import VisitEvent

__all__ = ["build_visit_event", "classify_device", "client_ip_from_request"]


def classify_device(user_agent: str) -> DeviceType:
    ua = parse(user_agent)
    if ua.is_bot:
        return DeviceType.BOT
    if ua.is_tablet:
        return DeviceType.TABLET
    if ua.is_mobile:
        return DeviceType.MOBILE
    return DeviceType.DESKTOP


def build_visit_event(alias: str, user_agent: Optional[str], client_ip: Optional[str]) -> VisitEvent:
    raw = user_agent or ""
    ua = parse(raw)
    return VisitEvent(
        alias=alias,
        user_agent=raw,
        device=classify_device(raw).value,
        os=ua.os.family[:64],
        browser=ua.browser.family[:64],
        ip=(client_ip or "")[:45],
    )


def client_ip_from_request(request: Request) -> str:
    # Peer address of the connection; forwarding headers are client-controlled.
    return request.client.host if request.client else ""

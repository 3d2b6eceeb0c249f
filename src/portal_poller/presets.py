"""Polled portal resources and their refresh intervals."""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Preset:
    name: str
    path: str
    initial_interval_ms: int
    params: dict = field(default_factory=dict)
    description: str = ""


PRESETS: dict[str, Preset] = {
    p.name: p
    for p in (
        Preset("notifications", "notifications", 30000, {"per_page": 20},
               "Notification feed for the current user"),
        # Bell badge refreshes faster than the feed
        Preset("unread_count", "notifications/unread-count", 15000,
               description="Unread notification count"),
        Preset("maintenance_statistics", "maintenance/requests/statistics", 60000,
               description="Maintenance request counts by status"),
        Preset("maintenance_requests", "maintenance/requests", 30000,
               description="Maintenance requests visible to the current role"),
        Preset("invoices", "invoices", 15000,
               description="Invoices, kept in sync with landlord updates"),
        Preset("dashboard", "analytics/dashboard", 60000, description="Dashboard summary"),
    )
}


def get_preset(name: str) -> Preset:
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown preset: {name}. Use {'|'.join(sorted(PRESETS))}") from None

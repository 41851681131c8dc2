"""
Proportional billing

The device's total bill is split across channels by each channel's share of
the energy measured on that device.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from energy_monitor.services.reading_cache import Reading


@dataclass(slots=True, frozen=True)
class ChannelShare:
    channel_number: int
    energy_wh: float
    percentage: float
    cost: float


def proportional_cost(channel_energy: float, total_energy: float, bill: float) -> float:
    if total_energy <= 0:
        return 0.0
    return (channel_energy / total_energy) * bill


def percentage_share(channel_energy: float, total_energy: float) -> float:
    if total_energy <= 0:
        return 0.0
    return (channel_energy / total_energy) * 100.0


def channel_energy_totals(readings: Iterable[Reading], device_id: str) -> dict[int, float]:
    totals: dict[int, float] = {}
    for reading in readings:
        if reading.device_id != device_id:
            continue
        energy = reading.energy_wh or 0.0
        totals[reading.channel_number] = totals.get(reading.channel_number, 0.0) + energy
    return totals


def allocate(energies: Mapping[int, float], bill: float) -> dict[int, ChannelShare]:
    total = sum(energy or 0.0 for energy in energies.values())
    return {
        channel: ChannelShare(
            channel_number=channel,
            energy_wh=energy or 0.0,
            percentage=percentage_share(energy or 0.0, total),
            cost=proportional_cost(energy or 0.0, total, bill),
        )
        for channel, energy in sorted(energies.items())
    }

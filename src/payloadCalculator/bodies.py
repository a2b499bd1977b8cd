# Licensed under the PolyForm Noncommercial License 1.0.0
"""Celestial bodies and their atmosphere models."""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence
import math
import numpy as np
from scipy.interpolate import PchipInterpolator

AtmosphereCurve = Callable[[float], float]

# Spacing of the lookup grid the sampled curves are evaluated on (m)
CURVE_GRID_STEP = 10.0


def _tabulate(spline: PchipInterpolator, top: float, step: float = CURVE_GRID_STEP) -> AtmosphereCurve:
    """Evaluate a spline once on a fine grid and return a fast piecewise-linear lookup."""
    n = max(2, int(math.ceil(top / step)) + 1)
    grid = np.linspace(0.0, top, n)
    values = spline(grid).tolist()
    spacing = top / (n - 1)

    def curve(h):
        if h <= 0.0:
            return values[0]
        if h >= top:
            return values[-1]
        x = h / spacing
        i = int(x)
        if i >= n - 1:
            return values[-1]
        t = x - i
        return values[i] * (1.0 - t) + values[i + 1] * t

    return curve


@dataclass
class CelestialBody:
    """
    Launch body: size, gravity, rotation and atmosphere.

    Attributes:
        name: Body name, also used as a cache key
        radius: Mean radius (m)
        mu: Standard gravitational parameter (m^3 s^-2)
        gee_asl: Surface gravity in standard gees
        rotation_period: Sidereal rotation period (s); 0 for a non-rotating body
        sphere_of_influence: Sphere-of-influence radius from the body centre (m)
        atmosphere: True if the body has an atmosphere
        atmosphere_pressure_sea_level: Sea-level pressure (kPa)
        atmosphere_depth: Altitude of the top of the atmosphere (m)
        pressure_curve: Pressure in kPa as a function of altitude
        temperature_curve: Temperature in K as a function of altitude
    """
    name: str
    radius: float
    mu: float
    gee_asl: float
    rotation_period: float = 0.0
    sphere_of_influence: float = math.inf
    atmosphere: bool = False
    atmosphere_pressure_sea_level: float = 0.0
    atmosphere_depth: float = 0.0
    pressure_curve: Optional[AtmosphereCurve] = None
    temperature_curve: Optional[AtmosphereCurve] = None

    def __post_init__(self):
        if self.radius <= 0 or self.mu <= 0:
            raise ValueError(f"{self.name}: radius and gravitational parameter must be positive")
        if self.atmosphere and (self.pressure_curve is None or self.temperature_curve is None):
            raise ValueError(f"{self.name}: an atmosphere needs pressure and temperature curves")

    @property
    def has_atmosphere(self) -> bool:
        return self.atmosphere and self.atmosphere_depth > 0.0

    @property
    def surface_gravity(self) -> float:
        """Surface gravity in m/s^2."""
        return self.gee_asl * 9.80665

    @property
    def equatorial_speed(self) -> float:
        """Surface rotation speed at the equator (m/s)."""
        if self.rotation_period <= 0:
            return 0.0
        return 2.0 * math.pi * self.radius / self.rotation_period

    def gravity(self, altitude: float) -> float:
        """Gravitational acceleration at given altitude."""
        r = self.radius + altitude
        return self.mu / (r * r)

    def pressure(self, altitude: float) -> float:
        """Static pressure (kPa) at altitude; zero outside the atmosphere."""
        if not self.atmosphere or altitude >= self.atmosphere_depth:
            return 0.0
        return max(0.0, float(self.pressure_curve(max(0.0, altitude))))

    def temperature(self, altitude: float) -> float:
        """Static temperature (K) at altitude; zero outside the atmosphere."""
        if not self.atmosphere or altitude >= self.atmosphere_depth:
            return 0.0
        return max(0.0, float(self.temperature_curve(max(0.0, altitude))))

    @classmethod
    def from_samples(cls, name: str, radius: float, mu: float, gee_asl: float,
                     altitudes: Sequence[float], pressures: Sequence[float],
                     temperatures: Sequence[float], **kwargs) -> "CelestialBody":
        """
        Create a body whose atmosphere is given as sampled tables.

        Pressure and temperature are interpolated with monotone cubic (PCHIP)
        curves, so a decreasing pressure table stays decreasing between samples.

        Args:
            name: Body name
            radius: Radius (m)
            mu: Gravitational parameter (m^3 s^-2)
            gee_asl: Surface gravity (g)
            altitudes: Sample altitudes (m), ascending, starting at 0
            pressures: Pressure at each altitude (kPa)
            temperatures: Temperature at each altitude (K)
            **kwargs: Remaining CelestialBody fields

        Returns:
            CelestialBody with an atmosphere reaching the last sample altitude
        """
        altitudes = np.asarray(altitudes, dtype=float)
        pressures = np.asarray(pressures, dtype=float)
        temperatures = np.asarray(temperatures, dtype=float)
        if altitudes.ndim != 1 or altitudes.size < 2:
            raise ValueError("At least two atmosphere samples are required")
        if pressures.shape != altitudes.shape or temperatures.shape != altitudes.shape:
            raise ValueError("altitudes, pressures and temperatures must have the same length")
        if np.any(np.diff(altitudes) <= 0):
            raise ValueError("Sample altitudes must be strictly increasing")

        top = float(altitudes[-1])
        pressure_curve = _tabulate(PchipInterpolator(altitudes, pressures), top)
        temperature_curve = _tabulate(PchipInterpolator(altitudes, temperatures), top)

        kwargs.setdefault("atmosphere_depth", top)
        kwargs.setdefault("atmosphere_pressure_sea_level", float(pressures[0]))
        return cls(name=name, radius=radius, mu=mu, gee_asl=gee_asl, atmosphere=True,
                   pressure_curve=pressure_curve, temperature_curve=temperature_curve, **kwargs)

    @classmethod
    def exponential(cls, name: str, radius: float, mu: float, gee_asl: float,
                    sea_level_pressure: float, scale_height: float, atmosphere_depth: float,
                    surface_temperature: float = 288.15, lapse_rate: float = 0.0,
                    minimum_temperature: float = 150.0, **kwargs) -> "CelestialBody":
        """Create a body with an isothermal-style exponential atmosphere and a linear temperature lapse."""

        def pressure_curve(h):
            return sea_level_pressure * math.exp(-h / scale_height)

        def temperature_curve(h):
            return max(minimum_temperature, surface_temperature - lapse_rate * h)

        return cls(name=name, radius=radius, mu=mu, gee_asl=gee_asl, atmosphere=True,
                   atmosphere_pressure_sea_level=sea_level_pressure,
                   atmosphere_depth=atmosphere_depth,
                   pressure_curve=pressure_curve, temperature_curve=temperature_curve, **kwargs)


def _earth_temperature_celsius(altitude: float) -> float:
    if altitude > 25000:
        return -131.21 + 0.00299 * altitude
    if altitude > 11000:
        return -56.46
    return 15.04 - 0.00649 * altitude


def _earth_pressure(altitude: float) -> float:
    """Piecewise NASA Glenn atmosphere, pressure in kPa."""
    T = _earth_temperature_celsius(altitude)
    if altitude > 25000:
        return 2.488 * ((T + 273.1) / 216.6) ** (-11.388)
    if altitude > 11000:
        return 22.65 * math.exp(1.73 - 0.000157 * altitude)
    return 101.29 * ((T + 273.1) / 288.08) ** 5.256


def _earth_temperature(altitude: float) -> float:
    return _earth_temperature_celsius(altitude) + 273.1


def earth() -> CelestialBody:
    """Earth with the piecewise troposphere/stratosphere/upper-atmosphere model."""
    return CelestialBody(
        name="Earth",
        radius=6.371e6,
        mu=3.986004418e14,
        gee_asl=1.0,
        rotation_period=86164.0905,
        sphere_of_influence=9.24e8,
        atmosphere=True,
        atmosphere_pressure_sea_level=101.325,
        atmosphere_depth=100000.0,
        pressure_curve=_earth_pressure,
        temperature_curve=_earth_temperature,
    )


def kerbin() -> CelestialBody:
    return CelestialBody.from_samples(
        "Kerbin",
        radius=600000.0,
        mu=3.5316e12,
        gee_asl=1.00034,
        altitudes=[0, 2500, 5000, 7500, 10000, 15000, 20000, 25000, 30000, 40000, 50000, 60000, 70000],
        pressures=[101.325, 69.0, 46.0, 30.4, 20.0, 8.6, 3.6, 1.55, 0.66, 0.13, 0.025, 0.004, 0.0],
        temperatures=[288.15, 272.0, 255.8, 239.6, 230.2, 218.0, 218.0, 218.0, 226.0, 250.0, 270.0, 245.0, 190.0],
        rotation_period=21549.425,
        sphere_of_influence=84159286.0,
    )


def duna() -> CelestialBody:
    return CelestialBody.exponential(
        "Duna",
        radius=320000.0,
        mu=3.0136321e11,
        gee_asl=0.3,
        sea_level_pressure=6.755,
        scale_height=5700.0,
        atmosphere_depth=50000.0,
        surface_temperature=233.0,
        lapse_rate=0.0016,
        rotation_period=65517.859,
        sphere_of_influence=47921949.0,
    )


def mun() -> CelestialBody:
    return CelestialBody(
        name="Mun",
        radius=200000.0,
        mu=6.5138398e10,
        gee_asl=0.166,
        rotation_period=138984.38,
        sphere_of_influence=2429559.1,
    )


PRESETS = {
    "earth": earth,
    "kerbin": kerbin,
    "duna": duna,
    "mun": mun,
}


def get_body(name: str) -> CelestialBody:
    """Look up a preset body by case-insensitive name."""
    try:
        return PRESETS[name.strip().lower()]()
    except KeyError:
        raise ValueError(f"Unknown body {name!r}; known bodies: {', '.join(sorted(PRESETS))}") from None

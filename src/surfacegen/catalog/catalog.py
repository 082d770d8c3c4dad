"""Static catalog of advertising-surface templates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

from ..exceptions import UnknownTemplateError


@dataclass(frozen=True, slots=True)
class Template:
    """One advertising surface the logo is composited onto."""

    id: str
    name: str
    category: str
    prompt: str


@dataclass(frozen=True, slots=True)
class TemplateCategory:
    name: str
    templates: tuple[Template, ...]


def _surface(template_id: str, name: str, category: str, scene: str) -> Template:
    prompt = (
        f"Create an ultra-photorealistic photograph of {scene}. "
        "The provided logo must be integrated naturally onto the advertising surface, "
        "respecting perspective, lighting and material texture. "
        "The result must look like a real commercial photograph, not a render."
    )
    return Template(id=template_id, name=name, category=category, prompt=prompt)


_IN_FLIGHT = "In-Flight Experience"
_AIRPORT = "Airport & Ground Services"
_ROADSIDE = "Roadside & Outdoor"
_TRANSIT = "Public Transit"
_URBAN = "Urban & Retail"

DEFAULT_TEMPLATES: tuple[Template, ...] = (
    _surface("aircraft-exterior", "Aircraft Exterior", _IN_FLIGHT,
             "a wide-body airliner on the tarmac at golden hour with the logo on the fuselage and tail fin"),
    _surface("skyline-panel", "Aircraft Skyline Panel", _IN_FLIGHT,
             "an aircraft cabin seen from a passenger seat, with a banner on the panel above the windows"),
    _surface("overhead-bin", "Overhead Bin Ad", _IN_FLIGHT,
             "a modern aircraft aisle with the logo printed on the closed overhead luggage bins"),
    _surface("seat-headrest", "Seat Headrest Cover", _IN_FLIGHT,
             "a close-up of a business class seat with the logo embroidered on the headrest cover"),
    _surface("meal-tray", "Aircraft Meal Tray Ad", _IN_FLIGHT,
             "a top-down view of a deployed aircraft tray table whose surface carries the logo"),
    _surface("terminal-ad", "Airport Terminal Ad", _AIRPORT,
             "a bright airport terminal concourse with a large backlit display showing the logo"),
    _surface("boarding-pass", "Boarding Pass Advertisement", _AIRPORT,
             "a traveller holding a printed boarding pass with the logo in its advertising strip"),
    _surface("step-ladder", "Aircraft Step Ladder", _AIRPORT,
             "an aircraft boarding staircase on the apron with the logo wrapped on its side panel"),
    _surface("baggage-cart", "Baggage Cart", _AIRPORT,
             "a row of airport baggage trolleys carrying the logo on their front panels"),
    _surface("airport-trolley", "Airport Trolley", _AIRPORT,
             "a passenger luggage trolley in a departure hall with the logo on its rear plate"),
    _surface("unipole-billboard", "Highway Unipole", _ROADSIDE,
             "a highway unipole billboard at dusk displaying the logo above traffic"),
    _surface("led-billboard", "Digital LED Billboard", _ROADSIDE,
             "a large digital LED billboard on a busy city junction at night showing the logo"),
    _surface("road-median", "Road Median Ad", _ROADSIDE,
             "a series of road median panels along a city avenue carrying the logo"),
    _surface("unipole-media", "Unipole Media", _ROADSIDE,
             "a double-sided unipole structure beside an expressway displaying the logo"),
    _surface("facade-bridge", "Facade/Bridge Media", _ROADSIDE,
             "a flyover bridge facade wrapped with a wide banner showing the logo"),
    _surface("street-hoarding", "Street Hoarding", _ROADSIDE,
             "a street-level hoarding along a busy sidewalk featuring the logo"),
    _surface("bus-wrap", "Bus Branding", _TRANSIT,
             "a city bus in traffic with a full side wrap featuring the logo"),
    _surface("bus-interior", "Bus Interior Panel", _TRANSIT,
             "the interior of a city bus with the logo on the overhead advertising panels"),
    _surface("metro-exterior", "Metro Exterior Wrap", _TRANSIT,
             "a metro train arriving at an elevated station with the logo wrapped on its carriages"),
    _surface("metro-ad", "Metro Platform Ad", _TRANSIT,
             "an underground metro platform with a backlit wall poster showing the logo"),
    _surface("car-wrap", "Car Wrap Advertisement", _TRANSIT,
             "a hatchback car parked on a city street with a vinyl wrap featuring the logo"),
    _surface("shopping-mall", "Shopping Mall Ad", _URBAN,
             "a multi-storey shopping mall atrium with hanging banners showing the logo"),
    _surface("auto-canopy", "Auto Canopy Tent", _URBAN,
             "an auto-rickshaw whose canopy tent is printed with the logo"),
)


class TemplateCatalog:
    """Ordered, immutable collection of templates keyed by id."""

    def __init__(self, templates: Iterable[Template] = DEFAULT_TEMPLATES) -> None:
        self._templates: tuple[Template, ...] = tuple(templates)
        self._by_id = {template.id: template for template in self._templates}
        if len(self._by_id) != len(self._templates):
            raise ValueError("template ids must be unique")
        if not self._templates:
            raise ValueError("catalog must contain at least one template")

    def __iter__(self) -> Iterator[Template]:
        return iter(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._by_id

    @property
    def templates(self) -> Sequence[Template]:
        return self._templates

    def ids(self) -> list[str]:
        return [template.id for template in self._templates]

    def get(self, template_id: str) -> Template:
        try:
            return self._by_id[template_id]
        except KeyError as exc:
            raise UnknownTemplateError(f"Unknown template '{template_id}'") from exc

    def categories(self) -> list[TemplateCategory]:
        grouped: dict[str, list[Template]] = {}
        for template in self._templates:
            grouped.setdefault(template.category, []).append(template)
        return [TemplateCategory(name=name, templates=tuple(items)) for name, items in grouped.items()]


__all__ = ["DEFAULT_TEMPLATES", "Template", "TemplateCatalog", "TemplateCategory"]

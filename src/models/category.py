# src/models/category.py

"""Marketplace categories and shopping locations.

Each enum member maps to the literal strings the marketplace uses:
a display name and, for categories, the ``Taxonomy Level 1`` search
value.  ``ALL`` carries no taxonomy and is omitted from the query.
"""

from enum import Enum


class Category(Enum):
    """Search categories, valued by their display names."""

    ALL = "All Categories"
    ELECTRONICS = "Electronics"
    HOME_AND_HOUSEHOLD = "Home & Household Essentials"
    HOME_IMPROVEMENT = "Home Improvement"
    SMART_HOME = "Smart Home"
    OFFICE_AND_SCHOOL = "Office & School Supplies"
    AUTOMOTIVE = "Automotive"

    @property
    def display_name(self) -> str:
        """Human-readable category label."""
        return self.value

    @property
    def taxonomy(self) -> str:
        """Taxonomy string sent in the search query (empty for ALL)."""
        return CATEGORY_TAXONOMY[self]

    @classmethod
    def from_name(cls, name: str) -> "Category":
        """Resolve a member from its name or display label (case-insensitive)."""
        key = name.strip().replace("-", "_").replace(" ", "_").upper()
        if key in cls.__members__:
            return cls[key]
        for member in cls:
            if member.value.lower() == name.strip().lower():
                return member
        raise ValueError(f"Unknown category: {name!r}")


# Unencoded form; urlencode turns "Office & School Supplies" into
# "Office+%26+School+Supplies" on the wire.
CATEGORY_TAXONOMY: dict[Category, str] = {
    Category.ALL: "",
    Category.ELECTRONICS: "Electronics",
    Category.HOME_AND_HOUSEHOLD: "Home & Household Essentials",
    Category.HOME_IMPROVEMENT: "Home Improvement",
    Category.SMART_HOME: "Smart Home",
    Category.OFFICE_AND_SCHOOL: "Office & School Supplies",
    Category.AUTOMOTIVE: "Automotive",
}


class Location(Enum):
    """Shopping locations, valued by the name the search expects."""

    LAS_VEGAS = "Las Vegas, NV"
    PHOENIX = "Phoenix, AZ"
    HOUSTON = "Houston, TX"
    PHILADELPHIA = "Philadelphia, PA"
    DENVER = "Denver, CO"
    DALLAS = "Dallas, TX"

    @classmethod
    def from_name(cls, name: str) -> "Location":
        """Resolve a member from its name or display label (case-insensitive)."""
        key = name.strip().replace("-", "_").replace(" ", "_").upper()
        if key in cls.__members__:
            return cls[key]
        for member in cls:
            if member.value.lower() == name.strip().lower():
                return member
        raise ValueError(f"Unknown location: {name!r}")

    @property
    def cookie(self) -> str:
        """Signed session value that selects this location on the site."""
        return LOCATION_COOKIES[self]


# Captured from the site, URL-decoded.  The payload is
# {"shoppingLocation": {"id": ..., "name": ...}} plus a signature.
LOCATION_COOKIES: dict[Location, str] = {
    Location.LAS_VEGAS: "eyJzaG9wcGluZ0xvY2F0aW9uIjp7ImlkIjoxLCJuYW1lIjoiTGFzIFZlZ2FzLCBOViIsImxvY2F0aW9uUGhvdG8iOltdfX0=.XnEACH8r6fQr8vpoJUXKef+eCBg3byb8CF6UgSgO+3w",
    Location.PHOENIX: "eyJzaG9wcGluZ0xvY2F0aW9uIjp7ImlkIjoyLCJuYW1lIjoiUGhvZW5peCwgQVoiLCJsb2NhdGlvblBob3RvIjpbXX19.jndmip+cG/iHXVo1hPJSilflQl2tNkln7JPND9ryMvo",
    Location.HOUSTON: "eyJzaG9wcGluZ0xvY2F0aW9uIjp7ImlkIjo1LCJuYW1lIjoiSG91c3RvbiwgVFgiLCJsb2NhdGlvblBob3RvIjpbXX19.FrTnwjk0KEuJsmwDAvxyEI3s3Lcs63iP/gC9qKx4QRI",
    Location.PHILADELPHIA: "eyJzaG9wcGluZ0xvY2F0aW9uIjp7ImlkIjo2LCJuYW1lIjoiUGhpbGFkZWxwaGlhLCBQQSIsImxvY2F0aW9uUGhvdG8iOltdfX0=.sb3FDRm/NqJCX3/3mymHLky/tUI4jlLfQGrc7O9OIOw",
    Location.DENVER: "eyJzaG9wcGluZ0xvY2F0aW9uIjp7ImlkIjo3LCJuYW1lIjoiRGVudmVyLCBDTyIsImxvY2F0aW9uUGhvdG8iOltdfX0=.fh3TnhcLcJy0I5303uG4GfqrvJ6ynZVY2HDcAxBJt4o",
    Location.DALLAS: "eyJzaG9wcGluZ0xvY2F0aW9uIjp7ImlkIjo4LCJuYW1lIjoiRGFsbGFzLCBUWCIsImxvY2F0aW9uUGhvdG8iOltdfX0=.C9Xl7+efcVBDouv/WSRHiFNEl8soK4fQl0mkxK3YuBA",
}

"""Default location catalog seeded into an empty store.

Countries search by ISO code; cities by "City, Region, Country".
"""

from profile_search.core.schemas import Location

# (name, country, country_code, city, search_code, priority)
_DEFAULTS: tuple[tuple[str, str, str, str | None, str, int], ...] = (
    # English-speaking countries
    ("United States", "United States", "US", None, "US", 10),
    ("United Kingdom", "United Kingdom", "GB", None, "GB", 9),
    ("Canada", "Canada", "CA", None, "CA", 9),
    ("Australia", "Australia", "AU", None, "AU", 8),
    # Europe
    ("Germany", "Germany", "DE", None, "DE", 8),
    ("France", "France", "FR", None, "FR", 7),
    ("Netherlands", "Netherlands", "NL", None, "NL", 7),
    ("Switzerland", "Switzerland", "CH", None, "CH", 7),
    ("Sweden", "Sweden", "SE", None, "SE", 6),
    ("Denmark", "Denmark", "DK", None, "DK", 6),
    # Asia
    ("Singapore", "Singapore", "SG", None, "SG", 8),
    ("Hong Kong", "Hong Kong", "HK", None, "HK", 7),
    ("Japan", "Japan", "JP", None, "JP", 6),
    ("India", "India", "IN", None, "IN", 6),
    # US cities
    ("New York", "United States", "US", "New York", "New York, NY, US", 9),
    ("San Francisco", "United States", "US", "San Francisco", "San Francisco, CA, US", 9),
    ("Los Angeles", "United States", "US", "Los Angeles", "Los Angeles, CA, US", 8),
    ("Chicago", "United States", "US", "Chicago", "Chicago, IL, US", 7),
    ("Boston", "United States", "US", "Boston", "Boston, MA, US", 7),
    ("Seattle", "United States", "US", "Seattle", "Seattle, WA, US", 7),
    # European cities
    ("London", "United Kingdom", "GB", "London", "London, GB", 9),
    ("Berlin", "Germany", "DE", "Berlin", "Berlin, DE", 7),
    ("Paris", "France", "FR", "Paris", "Paris, FR", 7),
    ("Amsterdam", "Netherlands", "NL", "Amsterdam", "Amsterdam, NL", 6),
    ("Zurich", "Switzerland", "CH", "Zurich", "Zurich, CH", 6),
    # Canadian cities
    ("Toronto", "Canada", "CA", "Toronto", "Toronto, ON, CA", 8),
    ("Vancouver", "Canada", "CA", "Vancouver", "Vancouver, BC, CA", 7),
    # Australian cities
    ("Sydney", "Australia", "AU", "Sydney", "Sydney, AU", 7),
    ("Melbourne", "Australia", "AU", "Melbourne", "Melbourne, AU", 6),
)


def default_locations() -> list[Location]:
    """Return fresh Location objects for the default catalog."""
    return [
        Location(
            name=name,
            country=country,
            country_code=code,
            city=city,
            search_code=search_code,
            priority=priority,
        )
        for name, country, code, city, search_code, priority in _DEFAULTS
    ]

import math

from app.models import BuildingDimensions, Developer

# Smallest billboard face and how many of them fit on a face before it gets crowded
MIN_BILLBOARD_AREA = 10 * 8
BILLBOARD_SPACING = 6


def building_dimensions(contributions: int, public_repos: int) -> tuple[int, int, float]:
    """Width, depth and height of a building from GitHub activity.

    The renderer jitters width and depth per building with a seeded random
    offset; the server uses the mid-seed values, which is all the slot
    arithmetic needs.
    """
    repo_factor = min(1.0, max(0, public_repos) / 100)
    base_width = 14 + repo_factor * 16
    width = round(base_width + 5)
    depth = round(12 + 10)
    height = max(30.0, 12 + math.sqrt(max(0, contributions)) * 3)
    return width, depth, height


def billboard_max_slots(contributions: int, public_repos: int) -> int:
    width, depth, height = building_dimensions(contributions, public_repos)
    total_face_area = 2 * (width + depth) * height
    return max(1, math.floor(total_face_area / (MIN_BILLBOARD_AREA * BILLBOARD_SPACING)))


def dimensions_for(developer: Developer) -> BuildingDimensions:
    width, depth, height = building_dimensions(developer.contributions, developer.public_repos)
    return BuildingDimensions(
        width=width,
        depth=depth,
        height=round(height, 2),
        billboard_slots=billboard_max_slots(developer.contributions, developer.public_repos),
    )

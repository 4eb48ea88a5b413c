from app.models.hotel import Hotel
from app.models.package import Package, PackageHotel

__all__ = [
    "Hotel",
    "Package",
    "PackageHotel",
]

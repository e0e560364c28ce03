import logging
import random
from datetime import datetime, date
from typing import Any, Dict, List, Optional

import httpx

from ..errors import SubjectFetchError
from ..models.game import Coordinates, RoundSubject, current_year
from ..constants import MIN_YEAR
from .scoring import haversine_distance

logger = logging.getLogger(__name__)

# Photos closer than this to an already selected one are skipped
MIN_SEPARATION_KM = 1.0


class ImmichClient:
    """Subject source backed by the photo library of an Immich server."""

    def __init__(self, api_url: str, api_key: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = api_url.rstrip('/')
        self.api_key = api_key
        self.transport = transport
        self.headers = {
            "x-api-key": api_key,
            "Accept": "application/json"
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    @staticmethod
    def _location_label(exif_info: Dict[str, Any]) -> str:
        parts = [exif_info.get(k) for k in ("city", "state", "country")]
        label = ", ".join(p for p in parts if p)
        return label or "Unknown location"

    def _to_photo(self, asset: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        exif_info = asset.get("exifInfo") or {}
        lat = exif_info.get("latitude")
        lon = exif_info.get("longitude")
        date_taken_str = exif_info.get("dateTimeOriginal")

        # Check if coordinates exist and are not None/0
        if not (lat and lon and date_taken_str):
            return None
        try:
            taken = datetime.fromisoformat(date_taken_str.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            return None
        if not MIN_YEAR <= taken.year <= current_year():
            return None

        asset_id = asset.get("id")
        return {
            "id": asset_id,
            "mediaRef": f"/api/game/photo/{asset_id}/preview",
            "latitude": lat,
            "longitude": lon,
            "label": self._location_label(exif_info),
            "taken": taken,
        }

    async def _search_photos(
        self,
        client: httpx.AsyncClient,
        start_date: Optional[date],
        end_date: Optional[date],
        max_pages: int,
    ) -> List[Dict[str, Any]]:
        all_photos = []
        for page in range(1, max_pages + 1):
            search_params = {
                "isNotInAlbum": False,
                "withExif": True,
                "size": 100,
                "page": page
            }

            # Add date filters if provided
            if start_date:
                search_params["takenAfter"] = start_date.isoformat() + "T00:00:00.000Z"
            if end_date:
                search_params["takenBefore"] = end_date.isoformat() + "T23:59:59.999Z"

            response = await client.post(
                f"{self.api_url}/search/metadata",
                headers=self.headers,
                json=search_params
            )
            response.raise_for_status()
            result = response.json()

            assets = result.get("assets", {}).get("items", []) if isinstance(result.get("assets"), dict) else result.get("assets", [])
            if not assets:
                break  # No more photos

            for asset in assets:
                photo = self._to_photo(asset)
                if photo is not None:
                    all_photos.append(photo)
        return all_photos

    @staticmethod
    def _select_spread(photos: List[Dict[str, Any]], count: int) -> List[Dict[str, Any]]:
        """Pick one photo per day, each at least MIN_SEPARATION_KM from the others."""
        photos_by_day: Dict[str, List[Dict[str, Any]]] = {}
        for photo in photos:
            photos_by_day.setdefault(photo["taken"].date().isoformat(), []).append(photo)

        if len(photos_by_day) < count:
            raise SubjectFetchError(
                f"Not enough different days with photos. Found {len(photos_by_day)} days, need {count}."
            )

        selected_photos: List[Dict[str, Any]] = []
        available_days = list(photos_by_day.keys())
        random.shuffle(available_days)

        for day in available_days:
            if len(selected_photos) >= count:
                break

            day_photos = photos_by_day[day]
            random.shuffle(day_photos)

            for photo in day_photos:
                too_close = any(
                    haversine_distance(
                        photo["latitude"], photo["longitude"],
                        selected["latitude"], selected["longitude"]
                    ) < MIN_SEPARATION_KM
                    for selected in selected_photos
                )
                if not too_close:
                    selected_photos.append(photo)
                    break

        if len(selected_photos) < count:
            raise SubjectFetchError(
                f"Could not find {count} photos from different days that are at least "
                f"{MIN_SEPARATION_KM:g}km apart. Found {len(selected_photos)}."
            )
        return selected_photos

    async def fetch_round_subjects(
        self,
        count: int = 5,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        max_pages: int = 20,
    ) -> List[RoundSubject]:
        """
        Fetch random photos that have GPS coordinates and a capture date.

        Photos are selected from different days and at least 1km apart.

        Args:
            count: Number of subjects to fetch
            start_date: Optional filter - photos taken after this date
            end_date: Optional filter - photos taken before this date
            max_pages: Search pages to scan

        Returns:
            List of round subjects

        Raises:
            SubjectFetchError: If the server fails or the library is too small
        """
        async with self._client(timeout=30.0) as client:
            try:
                all_photos = await self._search_photos(client, start_date, end_date, max_pages)
            except httpx.HTTPStatusError as e:
                raise SubjectFetchError(f"Error connecting to Immich: {str(e)}") from e
            except httpx.RequestError as e:
                raise SubjectFetchError(f"Cannot reach Immich server: {str(e)}") from e

        if len(all_photos) < count:
            raise SubjectFetchError(
                f"Not enough photos with GPS coordinates found. Found {len(all_photos)}, need {count}. "
                "Make sure your photos have GPS metadata in Immich and EXIF extraction is enabled."
            )

        selected = self._select_spread(all_photos, count)
        logger.info("Selected %d Immich photos from %d candidates", len(selected), len(all_photos))
        return [
            RoundSubject(
                id=photo["id"],
                true_coordinates=Coordinates(lat=photo["latitude"], lng=photo["longitude"]),
                true_year=photo["taken"].year,
                location_label=photo["label"],
                media_ref=photo["mediaRef"],
            )
            for photo in selected
        ]

    async def get_asset_image(self, asset_id: str, quality: str = "preview") -> bytes:
        """
        Get image bytes for an asset.

        Args:
            asset_id: The asset ID
            quality: "thumbnail", "preview" or "original"

        Returns:
            Image bytes
        """
        if quality == "original":
            url = f"{self.api_url}/assets/{asset_id}/original"
        elif quality == "preview":
            url = f"{self.api_url}/assets/{asset_id}/thumbnail?size=preview"
        else:
            url = f"{self.api_url}/assets/{asset_id}/thumbnail"

        async with self._client(timeout=60.0) as client:
            try:
                response = await client.get(url, headers=self.headers)
                response.raise_for_status()
                return response.content
            except httpx.HTTPError as e:
                raise SubjectFetchError(f"Error fetching {quality} image: {str(e)}") from e

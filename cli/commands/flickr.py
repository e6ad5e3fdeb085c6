"""
Flickr commands: photostream backups.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.progress import track

from cli.output import command_errors, connect, console
from team51.clients.flickr_client import FlickrClient
from team51.pyd_models.misc_models import FlickrPage

logger = logging.getLogger(__name__)

app = typer.Typer(help="📷 Flickr backups", add_completion=False)

PHOTO_EXTRAS = ",".join(
    [
        "url_o",
        "description",
        "license",
        "date_upload",
        "date_taken",
        "original_format",
        "last_update",
        "geo",
        "tags",
        "machine_tags",
        "views",
        "media",
    ]
)


def write_json(path: Path, data):
    path.write_text(json.dumps(data, indent=4, ensure_ascii=False), encoding="utf-8")


def media_url_for(flickr: FlickrClient, photo: dict) -> Optional[str]:
    """Photos have a direct original URL; videos need the size matching the original height."""
    if photo.get("media", "photo") == "photo":
        return photo.get("url_o")

    for size in flickr.get_photo_sizes(photo["id"]).get("size", []):
        if size.get("media") == "video" and str(size.get("height")) == str(photo.get("height_o")):
            return size.get("source")
    return None


def save_photosets(flickr: FlickrClient, user_id: str, directory: Path):
    """Write one JSON file per photoset with its photo list; existing files are kept."""
    directory.mkdir(parents=True, exist_ok=True)
    photosets = flickr.list_photosets(user_id).get("photoset", [])

    for photoset in track(photosets, description="Downloading photosets", console=console):
        data_file = directory / f"{photoset['id']}.json"
        if data_file.exists():
            continue

        photos = []
        page = 1
        while True:
            result = flickr.list_photoset_photos(photoset["id"], page=page)
            photos.extend(result.get("photo", []))
            if not FlickrPage(**result).has_next_page:
                break
            page += 1

        write_json(data_file, {"photoset": photoset, "photos": photos})


def save_media(flickr: FlickrClient, photo: dict, directory: Path):
    """Save a photo or video with its metadata and comments."""
    directory.mkdir(parents=True, exist_ok=True)
    write_json(directory / "meta.json", photo)
    write_json(directory / "comments.json", flickr.list_photo_comments(photo["id"]))

    media_url = media_url_for(flickr, photo)
    if not media_url:
        raise ValueError(f"No downloadable file found for media {photo['id']}")
    (directory / f"media.{photo.get('originalformat', 'jpg')}").write_bytes(flickr.download(media_url))


@app.command("scrap-photostream")
def scrap_photostream(
    username: str = typer.Argument(..., help="Username of the Flickr account"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum number of media files to download"),
    output_dir: Path = typer.Option(Path("flickr"), "--output-dir", help="Directory the backup is written to"),
):
    """
    Download the photos, videos and photosets of a Flickr account.

    Files land in <output-dir>/<user id>/photosets and
    <output-dir>/<user id>/media/<photo|video>/<id>.

    Example:
        team51 flickr scrap-photostream someuser --limit 100
    """
    limit = abs(limit) if limit else None
    flickr = connect(FlickrClient)

    with command_errors(f"Failed to fetch user ID from Flickr. Username error: {username}"):
        user_id = flickr.find_user_by_username(username).nsid

    user_dir = output_dir / user_id
    console.print(f"[bold magenta]Scraping {limit or 'all'} media from the photostream of user {user_id}.[/bold magenta]")

    console.print("Downloading photosets information...")
    with command_errors("Failed to fetch photosets from Flickr"):
        save_photosets(flickr, user_id, user_dir / "photosets")

    downloaded = 0
    page = 1
    while limit is None or downloaded < limit:
        console.print(f"Downloading photostream. Page: {page}")
        with command_errors(f"Failed to fetch photos from Flickr. Page error: {page}"):
            result = flickr.list_user_photos(user_id, extras=PHOTO_EXTRAS, page=page)

        photos = result.get("photo", [])
        if limit is not None:
            photos = photos[: limit - downloaded]

        for photo in track(photos, description=f"Page {page}", console=console):
            with command_errors(f"Failed to save media {photo.get('id')}"):
                save_media(flickr, photo, user_dir / "media" / photo.get("media", "photo") / str(photo["id"]))
            downloaded += 1

        if not photos or not FlickrPage(**result).has_next_page:
            break
        page += 1

    if downloaded == 0:
        console.print(f"📭 [yellow]No media found in the photostream of {username}.[/yellow]")
        return
    console.print(f"✅ [green]Downloaded {downloaded} media files to {user_dir}.[/green]")

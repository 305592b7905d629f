"""
Tests for asset resolution and the localization manifest.
"""

import asyncio
import os
import shutil
import tempfile

import pytest

from fakes import FakeFetcher
from site_snapshot.crawler.capture import AssetReference
from site_snapshot.crawler.downloader import (
    AssetManifest,
    AssetResolver,
    classify_folder,
    filename_from_url,
    is_stripped_script,
    normalize_image_cdn_url,
)
from site_snapshot.utils.settings import Settings


SITE = "https://example.com"
WIX_IMAGE = "https://static.wixstatic.com/media/abc~mv2.jpg/v1/fill/w_300,h_200,al_c/abc~mv2.jpg?quality=80"
WIX_ORIGINAL = "https://static.wixstatic.com/media/abc~mv2.jpg"
GTM = "https://www.googletagmanager.com/gtm.js?id=GTM-1"
RUNTIME = "https://static.parastorage.com/services/wix-thunderbolt/dist/main.js"
LEAFLET = "https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"


class TestHelpers:
    """Tests for folder, filename and CDN helpers."""

    @pytest.mark.parametrize("url,folder", [
        ("https://cdn.example.com/a/logo.PNG", "images"),
        ("https://cdn.example.com/photo.jpeg?w=200", "images"),
        ("https://cdn.example.com/icon.svg", "images"),
        ("https://cdn.example.com/inter.woff2", "fonts"),
        ("https://cdn.example.com/site.css?v=3", "css"),
        ("https://cdn.example.com/app.js", "js"),
        ("https://fonts.example.com/css2?family=Inter", "misc"),
        ("https://cdn.example.com/data.json", "misc"),
    ])
    def test_classify_folder(self, url, folder):
        assert classify_folder(url) == folder

    def test_filename_from_basename(self):
        assert filename_from_url("https://cdn.example.com/a/b/logo.png?x=1") == "logo.png"

    def test_filename_percent_decoded(self):
        assert filename_from_url("https://cdn.example.com/my%20logo.png") == "my logo.png"

    def test_filename_role_extension(self):
        assert filename_from_url("https://fonts.example.com/css2?family=Inter", "stylesheet") == "css2.css"
        assert filename_from_url("https://cdn.example.com/bundle", "script") == "bundle.js"

    def test_filename_without_path(self):
        assert filename_from_url("https://cdn.example.com/", "image") == "file.png"

    def test_filename_hash_suffix(self):
        first = filename_from_url("https://a.example.com/x/logo.png", hash_names=True)
        second = filename_from_url("https://a.example.com/y/logo.png", hash_names=True)
        assert first.startswith("logo_") and first.endswith(".png")
        assert first != second
        assert first == filename_from_url("https://a.example.com/x/logo.png", hash_names=True)

    def test_high_res_normalization(self):
        assert normalize_image_cdn_url(WIX_IMAGE) == WIX_ORIGINAL

    def test_high_res_leaves_other_urls(self):
        url = "https://cdn.example.com/media/a.jpg/v1/fill/a.jpg"
        assert normalize_image_cdn_url(url) == url
        assert normalize_image_cdn_url(WIX_ORIGINAL) == WIX_ORIGINAL

    def test_stripped_scripts(self):
        assert is_stripped_script(AssetReference(GTM, "script"))
        assert is_stripped_script(AssetReference(RUNTIME, "script"))
        assert is_stripped_script(AssetReference(RUNTIME, ""))
        assert not is_stripped_script(AssetReference(LEAFLET, "script"))

    def test_only_scripts_are_stripped(self):
        assert not is_stripped_script(AssetReference(WIX_IMAGE, "image"))
        assert not is_stripped_script(AssetReference("https://www.googletagmanager.com/pixel.png", "image"))

    def test_remote_tracker_stripped_without_tracking_removal(self):
        assert is_stripped_script(AssetReference(GTM, "script"), remove_tracking=False)


class TestAssetManifest:
    """Tests for AssetManifest."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def test_write_once(self):
        manifest = AssetManifest()
        assert manifest.add("https://cdn.example.com/a.png", "assets/images/a.png")
        assert not manifest.add("https://cdn.example.com/a.png", "assets/images/other.png")
        assert manifest.get("https://cdn.example.com/a.png") == "assets/images/a.png"

    def test_save_and_load(self):
        path = os.path.join(self.temp_dir, "assets.local.json")
        manifest = AssetManifest({"https://cdn.example.com/a.png": "assets/images/a.png"})
        manifest.save(path)

        loaded = AssetManifest.load(path)
        assert loaded.to_dict() == manifest.to_dict()

    def test_load_missing_is_empty(self):
        assert len(AssetManifest.load(os.path.join(self.temp_dir, "absent.json"))) == 0


class TestAssetResolver:
    """Tests for AssetResolver."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.settings = Settings(site_url=SITE, work_dir=self.temp_dir)

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def resolve(self, settings, fetcher, references):
        resolver = AssetResolver(settings, fetcher)
        manifest = asyncio.run(resolver.resolve_all(references))
        return resolver, manifest

    def output_file(self, rel):
        return os.path.join(self.settings.output_dir, *rel.split("/"))

    def test_downloads_into_folders(self):
        fetcher = FakeFetcher(binaries={
            "https://cdn.example.com/logo.png": b"png-bytes",
            "https://cdn.example.com/site.css": b"body{}",
            "https://fonts.example.com/css2?family=Inter": b"@font-face{}",
        })
        references = [
            AssetReference("https://cdn.example.com/logo.png", "image"),
            AssetReference("https://cdn.example.com/site.css", "stylesheet"),
            AssetReference("https://fonts.example.com/css2?family=Inter", "stylesheet"),
        ]
        _, manifest = self.resolve(self.settings, fetcher, references)

        assert manifest.to_dict() == {
            "https://cdn.example.com/logo.png": "assets/images/logo.png",
            "https://cdn.example.com/site.css": "assets/css/site.css",
            "https://fonts.example.com/css2?family=Inter": "assets/misc/css2.css",
        }
        with open(self.output_file("assets/images/logo.png"), "rb") as f:
            assert f.read() == b"png-bytes"

    def test_failures_are_omitted(self):
        fetcher = FakeFetcher(binaries={"https://cdn.example.com/ok.png": b"ok"})
        references = [
            AssetReference("https://cdn.example.com/ok.png", "image"),
            AssetReference("https://cdn.example.com/gone.png", "image"),
        ]
        resolver, manifest = self.resolve(self.settings, fetcher, references)

        assert "https://cdn.example.com/gone.png" not in manifest
        assert resolver.failed_assets == {"https://cdn.example.com/gone.png"}
        assert not os.path.exists(self.output_file("assets/images/gone.png"))

    def test_one_download_per_url(self):
        fetcher = FakeFetcher(binaries={"https://cdn.example.com/a.png": b"a"})
        references = [AssetReference("https://cdn.example.com/a.png", "image")] * 3
        _, manifest = self.resolve(self.settings, fetcher, references)

        assert len(manifest) == 1
        assert fetcher.calls["https://cdn.example.com/a.png"] == 1

    def test_high_res_fetches_original(self):
        settings = self.settings.with_overrides(download_high_res=True)
        fetcher = FakeFetcher(binaries={WIX_ORIGINAL: b"original"})
        _, manifest = self.resolve(settings, fetcher, [AssetReference(WIX_IMAGE, "image")])

        assert manifest.get(WIX_IMAGE) == "assets/images/abc~mv2.jpg"
        assert fetcher.calls[WIX_ORIGINAL] == 1
        assert WIX_IMAGE not in fetcher.calls

    def test_name_collision_is_lossy_by_default(self):
        fetcher = FakeFetcher(binaries={
            "https://a.example.com/x/logo.png": b"x",
            "https://a.example.com/y/logo.png": b"y",
        })
        references = [
            AssetReference("https://a.example.com/x/logo.png", "image"),
            AssetReference("https://a.example.com/y/logo.png", "image"),
        ]
        _, manifest = self.resolve(self.settings, fetcher, references)

        assert manifest.get("https://a.example.com/x/logo.png") == "assets/images/logo.png"
        assert manifest.get("https://a.example.com/y/logo.png") == "assets/images/logo.png"

    def test_hashed_names_avoid_collision(self):
        settings = self.settings.with_overrides(hash_asset_names=True)
        fetcher = FakeFetcher(binaries={
            "https://a.example.com/x/logo.png": b"x",
            "https://a.example.com/y/logo.png": b"y",
        })
        references = [
            AssetReference("https://a.example.com/x/logo.png", "image"),
            AssetReference("https://a.example.com/y/logo.png", "image"),
        ]
        _, manifest = self.resolve(settings, fetcher, references)

        first = manifest.get("https://a.example.com/x/logo.png")
        second = manifest.get("https://a.example.com/y/logo.png")
        assert first != second
        with open(self.output_file(first), "rb") as f:
            assert f.read() == b"x"
        with open(self.output_file(second), "rb") as f:
            assert f.read() == b"y"

    def test_no_references(self):
        _, manifest = self.resolve(self.settings, FakeFetcher(), [])
        assert len(manifest) == 0

    def test_stripped_scripts_not_downloaded(self):
        fetcher = FakeFetcher(binaries={
            GTM: b"gtm()",
            RUNTIME: b"boot()",
            LEAFLET: b"L={}",
            "https://cdn.example.com/logo.png": b"png",
        })
        references = [
            AssetReference(GTM, "script"),
            AssetReference(RUNTIME, "script"),
            AssetReference(LEAFLET, "script"),
            AssetReference("https://cdn.example.com/logo.png", "image"),
        ]
        resolver, manifest = self.resolve(self.settings, fetcher, references)

        assert manifest.to_dict() == {
            LEAFLET: "assets/js/leaflet.js",
            "https://cdn.example.com/logo.png": "assets/images/logo.png",
        }
        assert GTM not in fetcher.calls
        assert RUNTIME not in fetcher.calls
        assert resolver.failed_assets == set()
        assert not os.path.exists(self.output_file("assets/js/main.js"))

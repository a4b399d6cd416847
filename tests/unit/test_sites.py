from __future__ import annotations

from rename_images.sites import blog_prefix, current_sites, network_site_ids


def test_blog_prefix():
    assert blog_prefix("wp_", 1) == "wp_"
    assert blog_prefix("wp_", 7) == "wp_7_"


def test_single_site_uses_main_uploads(fake_db, wp_config):
    sites = current_sites(fake_db, wp_config)

    assert len(sites) == 1
    assert sites[0].blog_id == 1
    assert sites[0].prefix == "wp_"
    assert sites[0].uploads_dir == wp_config.uploads_basedir


def test_blog_id_selects_sub_site(fake_db, wp_config):
    (site,) = current_sites(fake_db, wp_config, blog_id=3)

    assert site.prefix == "wp_3_"
    assert site.uploads_dir == wp_config.uploads_basedir / "sites" / "3"


def test_upload_path_option_overrides_default(fake_db, wp_config):
    fake_db.options[("wp_4_", "upload_path")] = "media/four"

    (site,) = current_sites(fake_db, wp_config, blog_id=4)

    assert site.uploads_dir == wp_config.root / "media" / "four"


def test_network_pages_through_sites_in_hundreds(fake_db, wp_config):
    fake_db.blogs = list(range(1, 251))

    assert network_site_ids(fake_db, "wp_", 0) == list(range(1, 101))
    assert network_site_ids(fake_db, "wp_", 2) == list(range(201, 251))

    sites = current_sites(fake_db, wp_config, network=True, sites_page=1)
    assert [s.blog_id for s in sites] == list(range(101, 201))
    assert sites[0].prefix == "wp_101_"

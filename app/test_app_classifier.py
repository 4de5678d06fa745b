from app_classifier import classify_package, classify_snapshot, classify_text, has_foreign_id_leak
from models import AppSource, ScreenSnapshot, SnapshotChannel


def test_classify_text_by_content_markers():
    assert classify_text("UberX · R$ 14,90") == AppSource.UBER
    assert classify_text("Corrida Longa - R$ 35,00") == AppSource.NINETY_NINE
    assert classify_text("Aceitar por R$ 22,50\n4,83 · 287 corridas") == AppSource.NINETY_NINE
    assert classify_text("R$ 15,00 8 km") == AppSource.UNKNOWN
    assert classify_text("") == AppSource.UNKNOWN


def test_classify_package():
    assert classify_package("com.ubercab.driver") == AppSource.UBER
    assert classify_package("com.app99.driver") == AppSource.NINETY_NINE
    assert classify_package("br.com.driver99.beta") == AppSource.NINETY_NINE
    assert classify_package("com.whatsapp") == AppSource.UNKNOWN
    assert classify_package(None) == AppSource.UNKNOWN


def test_content_wins_over_stale_package_hint():
    snap = ScreenSnapshot(
        raw_text="Corrida Longa - R$ 35,00",
        source_channel=SnapshotChannel.NODE_TREE,
        origin_app_hint="com.ubercab.driver",
    )
    assert classify_snapshot(snap) == AppSource.NINETY_NINE


def test_package_hint_used_when_content_is_neutral():
    snap = ScreenSnapshot(raw_text="R$ 15,00", source_channel=SnapshotChannel.NOTIFICATION,
                          origin_app_hint="com.ubercab.driver")
    assert classify_snapshot(snap) == AppSource.UBER


def test_foreign_id_leak():
    assert has_foreign_id_leak(AppSource.UBER, "com.app99.driver:id/tv_price R$ 10,00")
    assert has_foreign_id_leak(AppSource.NINETY_NINE, "com.ubercab.driver:id/fare")
    assert not has_foreign_id_leak(AppSource.UBER, "com.ubercab.driver:id/fare")
    assert not has_foreign_id_leak(AppSource.UNKNOWN, "com.app99.driver:id/tv_price")

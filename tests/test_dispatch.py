import logging

from filtercam.dispatch import EffectRegistry
from filtercam.effects import EffectId, black_and_white, normal
from filtercam.models import FilterDescriptor
from filtercam.pixel_buffer import PixelBuffer


def test_dispatch_is_by_name_not_id():
    registry = EffectRegistry([FilterDescriptor(id="99", name="Black & White")])
    assert registry.effect_id("99") is EffectId.BLACK_AND_WHITE
    assert registry.resolve("99") is black_and_white

    buffer = PixelBuffer.solid(2, 2, (10, 20, 30, 255))
    registry.apply(buffer, "99")
    assert buffer.get_pixel(1, 1) == (20, 20, 20, 255)


def test_unknown_id_is_identity(registry, random_buffer):
    before = random_buffer.copy()
    registry.apply(random_buffer, "flt_nope")
    assert random_buffer == before
    assert registry.resolve(None) is normal


def test_unmatched_name_falls_back_to_normal(caplog):
    with caplog.at_level(logging.WARNING, logger="filtercam.dispatch"):
        registry = EffectRegistry([FilterDescriptor(id="x1", name="Sparkle")])
    assert registry.effect_id("x1") is EffectId.NORMAL
    assert "Sparkle" in caplog.text


def test_every_catalog_entry_resolves(registry, descriptors):
    for descriptor in descriptors:
        assert registry.effect_id(descriptor.id).value == descriptor.name


def test_refresh_replaces_tables(registry):
    assert "flt_03" in registry
    registry.refresh([FilterDescriptor(id="new", name="Neon")])
    assert "flt_03" not in registry
    assert len(registry) == 1
    assert registry.effect_id("new") is EffectId.NEON
    assert registry.descriptor("new").name == "Neon"
    assert registry.descriptor("flt_03") is None


def test_from_catalog(descriptors):
    class Catalog:
        def list_filters(self):
            return descriptors

    registry = EffectRegistry.from_catalog(Catalog())
    assert len(registry) == 15
    assert registry.descriptors == descriptors

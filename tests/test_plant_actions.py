import pytest
from conftest import make_plant

from plant_sim import plant_actions
from plant_sim.environment import EnvironmentSample
from plant_sim.errors import ReferenceDataNotFound
from plant_sim.models import NO_DISEASE


def test_create_plant(cache):
    record = plant_actions.create_plant("alice", "elephant ear", "house", cache=cache, humidity=80.0)
    assert record.species == "ElephantEar"
    assert record.location == "House"
    assert record.moisture == pytest.approx(78.0)
    assert record.last_growth_update is None
    assert record.last_disease_check is None
    assert len(record.plant_id) == 32
    assert record.disease == NO_DISEASE


def test_create_plant_requires_known_species(cache):
    with pytest.raises(ReferenceDataNotFound):
        plant_actions.create_plant("alice", "Cactus", "Ground", cache=cache)


def test_apply_fertilizer_respects_preference(cache):
    orchid = make_plant(species="Orchid")
    assert plant_actions.apply_fertilizer(orchid, "OrchidBloom", cache) == pytest.approx(1.6)
    other = make_plant(species="Orchid")
    assert plant_actions.apply_fertilizer(other, "GreenGrowth", cache) == pytest.approx(1.28)
    assert plant_actions.nutrient_level(other) == pytest.approx(50.0)


def test_shade_tent_cures_or_opens_shade(cache):
    burnt = make_plant(species="Spathiphyllum", disease="LeafBurn", disease_progress=0.4)
    assert plant_actions.apply_cure(burnt, "ShadeTent", cache) is True
    assert burnt.disease == NO_DISEASE

    rotting = make_plant(species="Spathiphyllum", disease="RootRot", disease_progress=0.4)
    assert plant_actions.apply_cure(rotting, "ShadeTent", cache) is False
    assert rotting.shade_active is True

    indoors = make_plant(species="Spathiphyllum", location="House", disease="RootRot", disease_progress=0.4)
    plant_actions.apply_cure(indoors, "ShadeTent", cache)
    assert indoors.shade_active is False


@pytest.mark.parametrize("item", ["shade_tent", "shade tent", "SHADETENT"])
def test_shade_tent_name_is_case_insensitive(cache, item):
    burnt = make_plant(species="Spathiphyllum", disease="LeafBurn", disease_progress=0.4)
    assert plant_actions.apply_cure(burnt, item, cache) is True
    assert burnt.disease == NO_DISEASE

    rotting = make_plant(species="Spathiphyllum", disease="RootRot", disease_progress=0.4)
    assert plant_actions.apply_cure(rotting, item, cache) is False
    assert rotting.shade_active is True


def test_watering_and_queries():
    record = make_plant(moisture=50.0, scale=0.25, disease="RootRot", disease_progress=0.6)
    assert plant_actions.add_moisture(record) == pytest.approx(60.0)
    assert plant_actions.moisture_level(record) == pytest.approx(60.0)
    assert plant_actions.growth_scale(record) == 0.25
    assert plant_actions.disease_severity(record) == "Severe"
    assert plant_actions.set_shade(record, True) is True


def test_plant_status(cache):
    record = make_plant(species="Monstera", moisture=60.0, disease="RootRot", disease_progress=0.1)
    status = plant_actions.plant_status(record, cache)
    assert status["max_scale"] == pytest.approx(0.7)
    assert status["growth_progress"] == pytest.approx(0.1 / 0.7)
    assert status["treatments"] == ["FungicideSpray"]
    assert status["severity"] == "Minor"
    assert status["disease_display"] == "Root Rot"
    assert "effective_moisture" not in status

    sample = EnvironmentSample(temperature=22.0, humidity=85.0, light=300.0)
    with_env = plant_actions.plant_status(record, cache, sample)
    assert with_env["effective_moisture"] == pytest.approx(80.0)
    assert 0.0 < with_env["growth_modifier"] <= 1.0
    assert with_env["environment"]["location"] == "Ground"
    assert record.moisture == 60.0

from datetime import timedelta

import pytest
from conftest import NOW, AlwaysTrigger, NeverTrigger, make_plant

from plant_sim.disease import (
    DiseaseReadings,
    apply_cure,
    check_for_disease,
    disease_severity,
    display_name,
    load_disease_table,
    set_shade,
    update_shade,
)
from plant_sim.models import NO_DISEASE, LocationCategory
from plant_sim.validators import validate_bundled_datasets

WET = DiseaseReadings(moisture=85.0, humidity=60.0, light=300.0, temperature=22.0, location=LocationCategory.GROUND)
MILD = DiseaseReadings(moisture=50.0, humidity=60.0, light=300.0, temperature=22.0, location=LocationCategory.GROUND)


def test_bundled_datasets_are_valid():
    assert validate_bundled_datasets() == {}


def test_root_rot_onset(cache):
    species = cache.species("Orchid")
    table = cache.disease_table("Orchid")
    record = make_plant(species="Orchid", last_disease_check=NOW - timedelta(hours=1))
    contracted = check_for_disease(record, species, table, WET, NOW, rng=AlwaysTrigger())
    assert contracted == "RootRot"
    assert record.disease == "RootRot"
    assert record.disease_progress == 0.0
    assert record.last_disease_check == NOW


def test_first_check_only_initialises(cache):
    record = make_plant(species="Orchid")
    assert check_for_disease(record, cache.species("Orchid"), cache.disease_table("Orchid"), WET, NOW, rng=AlwaysTrigger()) is None
    assert record.last_disease_check == NOW
    assert record.disease == NO_DISEASE


def test_checks_are_hourly_and_keep_remainder(cache):
    species = cache.species("Orchid")
    table = cache.disease_table("Orchid")
    record = make_plant(species="Orchid", last_disease_check=NOW - timedelta(minutes=30))
    assert check_for_disease(record, species, table, WET, NOW, rng=AlwaysTrigger()) is None
    assert record.last_disease_check == NOW - timedelta(minutes=30)

    record.last_disease_check = NOW - timedelta(hours=2, minutes=30)
    assert check_for_disease(record, species, table, WET, NOW, rng=NeverTrigger()) is None
    assert record.last_disease_check == NOW - timedelta(minutes=30)
    assert record.disease == NO_DISEASE


def test_onset_chance_compounds_over_checks():
    table = load_disease_table("Orchid")
    root_rot = table.get("RootRot")
    assert root_rot.onset_chance(1) == pytest.approx(0.05)
    assert root_rot.onset_chance(3) == pytest.approx(1 - 0.95**3)
    assert root_rot.onset_chance(0) == 0.0


def test_progression_while_conditions_hold(cache):
    species = cache.species("Orchid")
    table = cache.disease_table("Orchid")
    record = make_plant(
        species="Orchid",
        disease="RootRot",
        disease_progress=0.1,
        last_disease_check=NOW - timedelta(hours=3),
    )
    assert check_for_disease(record, species, table, WET, NOW) is None
    assert record.disease_progress == pytest.approx(0.1 + 3 * species.disease_progress_rate)
    assert record.disease_slowing_factor == pytest.approx(1.0 - 0.5 * record.disease_progress)

    record.last_disease_check = NOW - timedelta(hours=2)
    before = record.disease_progress
    check_for_disease(record, species, table, MILD, NOW)
    assert record.disease_progress == before


def test_location_restricted_disease(cache):
    species = cache.species("FicusLyrata")
    table = cache.disease_table("FicusLyrata")
    bright = DiseaseReadings(moisture=50.0, humidity=60.0, light=900.0, temperature=22.0, location=LocationCategory.HOUSE)
    record = make_plant(species="FicusLyrata", location="House", last_disease_check=NOW - timedelta(hours=1))
    assert check_for_disease(record, species, table, bright, NOW, rng=AlwaysTrigger()) is None

    outdoors = DiseaseReadings(moisture=50.0, humidity=60.0, light=900.0, temperature=22.0, location=LocationCategory.GROUND)
    ground = make_plant(species="FicusLyrata", last_disease_check=NOW - timedelta(hours=1))
    assert check_for_disease(ground, species, table, outdoors, NOW, rng=AlwaysTrigger()) == "LeafScorch"


def test_first_matching_disease_in_priority_order(cache):
    species = cache.species("Orchid")
    table = cache.disease_table("Orchid")
    # RootRot and FungalLeafSpot both hold; RootRot is listed first
    readings = DiseaseReadings(moisture=85.0, humidity=75.0, light=300.0, temperature=22.0, location=LocationCategory.GROUND)
    record = make_plant(species="Orchid", last_disease_check=NOW - timedelta(hours=1))
    assert check_for_disease(record, species, table, readings, NOW, rng=AlwaysTrigger()) == "RootRot"


def test_full_and_partial_cures():
    table = load_disease_table("ElephantEar")
    record = make_plant(species="ElephantEar", disease="RootRot", disease_progress=0.6)
    assert apply_cure(record, table, "DrainageShovel") is True
    assert record.disease == NO_DISEASE
    assert record.disease_slowing_factor == 1.0

    record = make_plant(species="ElephantEar", disease="LeafBlight", disease_progress=0.5)
    assert apply_cure(record, table, "PruningShears") is True
    assert record.disease_progress == pytest.approx(0.2)
    assert record.disease == "LeafBlight"
    assert apply_cure(record, table, "FungicideSpray") is True
    assert record.disease == NO_DISEASE
    assert record.disease_progress == 0.0


def test_cure_with_wrong_item_or_healthy_plant():
    table = load_disease_table("ElephantEar")
    record = make_plant(species="ElephantEar", disease="SpiderMites", disease_progress=0.4)
    assert apply_cure(record, table, "DrainageShovel") is False
    assert record.disease_progress == 0.4
    assert apply_cure(make_plant(species="ElephantEar"), table, "InsecticideSoap") is False


def test_cure_moisture_side_effect():
    table = load_disease_table("Monstera")
    record = make_plant(species="Monstera", disease="RootRot", disease_progress=0.3, moisture=90.0)
    assert apply_cure(record, table, "FungicideSpray") is True
    assert record.moisture == pytest.approx(70.0)
    assert record.disease == NO_DISEASE


def test_shade_cures_ground_plants():
    record = make_plant(disease="LeafScorch", disease_progress=0.3)
    assert set_shade(record, True) is True
    assert update_shade(record, 3600.0) is False
    assert record.shade_counter == pytest.approx(3600.0)
    assert update_shade(record, 3600.0) is True
    assert record.disease == NO_DISEASE
    assert record.shade_counter == 0.0


def test_shade_only_over_ground():
    record = make_plant(location="House", disease="LeafBurn", disease_progress=0.3)
    assert set_shade(record, True) is False
    assert update_shade(record, 10_000.0) is False
    assert record.disease == "LeafBurn"


def test_severity_and_display():
    assert disease_severity(0.0, "RootRot") == "None"
    assert disease_severity(0.1, "RootRot") == "Minor"
    assert disease_severity(0.3, "RootRot") == "Moderate"
    assert disease_severity(0.6, "RootRot") == "Severe"
    assert disease_severity(0.9, "RootRot") == "Critical"
    assert disease_severity(0.5, NO_DISEASE) == "None"
    assert display_name("FungalLeafSpot") == "Fungal Leaf Spot"


def test_classifier_labels():
    table = load_disease_table("ElephantEar")
    assert table.disease_for_label("LeafScorch") == "LeafBlight"
    assert table.disease_for_label("Healthy") == NO_DISEASE
    assert table.disease_for_label("Unknown") == NO_DISEASE
    assert table.treatments_for("SpiderMites") == ["InsecticideSoap", "WateringCan"]


def test_unknown_species_has_empty_table():
    table = load_disease_table("Cactus")
    assert table.diseases == ()
    record = make_plant(species="Cactus", last_disease_check=NOW - timedelta(hours=5))
    assert check_for_disease(record, None, table, WET, NOW, rng=AlwaysTrigger()) is None
    assert record.last_disease_check == NOW

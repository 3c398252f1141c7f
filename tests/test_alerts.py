import pytest

import alerts
import found_pets
from database import PetAlert
from errors import BadRequest, Forbidden, NotFound, Unauthorized

NEAR = {"lat": 40.0, "lng": -74.05}   # ~4.26 km from the alert centre
FAR = {"lat": 40.0, "lng": -74.2}     # ~17 km from the alert centre


@pytest.fixture()
def cat_alert(db, volunteer):
    return alerts.create_alert(db, volunteer, "cat", {"lat": 40.0, "lng": -74.0, "radius": 5})


def test_haversine_one_degree_on_equator():
    assert alerts.haversine_km(0, 0, 0, 1) == pytest.approx(111.195, abs=0.01)
    assert alerts.haversine_km(51.5, -0.12, 51.5, -0.12) == 0


def test_match_inside_radius(db, cat_alert):
    matches = alerts.match_alerts(db, "cat", NEAR)
    assert [a.id for a in matches] == [cat_alert.id]


def test_no_match_outside_radius(db, cat_alert):
    assert alerts.match_alerts(db, "cat", FAR) == []


def test_no_match_other_species(db, cat_alert):
    assert alerts.match_alerts(db, "dog", NEAR) == []


def test_radius_boundary_is_inclusive(db, volunteer):
    distance = alerts.haversine_km(10.0, 10.0, 10.0, 10.1)
    alerts.create_alert(db, volunteer, "dog", {"lat": 10.0, "lng": 10.0, "radius": distance})
    assert len(alerts.match_alerts(db, "dog", {"lat": 10.0, "lng": 10.1})) == 1


def test_inactive_alert_never_matches(db, volunteer, cat_alert):
    toggled = alerts.toggle_alert(db, volunteer, cat_alert.id)
    assert toggled.active is False
    assert alerts.match_alerts(db, "cat", NEAR) == []

    assert alerts.toggle_alert(db, volunteer, cat_alert.id).active is True
    assert len(alerts.match_alerts(db, "cat", NEAR)) == 1


def test_malformed_stored_alert_is_skipped(db, volunteer, cat_alert):
    db.add(PetAlert(volunteer_id=volunteer.user_id, pet_type="cat", location={"lat": 40.0}, active=True))
    db.commit()
    assert [a.id for a in alerts.match_alerts(db, "cat", NEAR)] == [cat_alert.id]


def test_report_returns_matching_alerts(db, volunteer, other_volunteer, cat_alert):
    report = found_pets.report_found_pet(db, other_volunteer, "cat", "Grey tabby near the park", NEAR)
    assert report.found_pet.id is not None
    assert [a.id for a in report.matching_alerts] == [cat_alert.id]

    far = found_pets.report_found_pet(db, other_volunteer, "cat", "Black cat", FAR)
    assert far.matching_alerts == []


@pytest.mark.parametrize("location", [
    {"lat": 40.0, "lng": -74.0},
    {"lat": 40.0, "lng": -74.0, "radius": 0},
    {"lat": 40.0, "lng": -74.0, "radius": -3},
    {"lat": 95.0, "lng": -74.0, "radius": 5},
    {"lat": "north", "lng": -74.0, "radius": 5},
    "40,-74",
])
def test_create_alert_rejects_bad_location(db, volunteer, location):
    with pytest.raises(BadRequest):
        alerts.create_alert(db, volunteer, "cat", location)


def test_create_alert_rejects_unknown_type(db, volunteer):
    with pytest.raises(BadRequest):
        alerts.create_alert(db, volunteer, "dragon", {"lat": 1, "lng": 1, "radius": 1})


def test_shelter_cannot_create_alert(db, shelter):
    with pytest.raises(Forbidden):
        alerts.create_alert(db, shelter, "cat", {"lat": 1, "lng": 1, "radius": 1})


def test_alert_ownership(db, other_volunteer, cat_alert):
    with pytest.raises(Forbidden):
        alerts.toggle_alert(db, other_volunteer, cat_alert.id)
    with pytest.raises(Forbidden):
        alerts.delete_alert(db, other_volunteer, cat_alert.id)
    with pytest.raises(NotFound):
        alerts.delete_alert(db, other_volunteer, 5555)


def test_list_and_delete_alerts(db, volunteer, other_volunteer, cat_alert):
    assert [a.id for a in alerts.list_alerts(db, volunteer)] == [cat_alert.id]
    assert alerts.list_alerts(db, other_volunteer) == []
    with pytest.raises(Unauthorized):
        alerts.list_alerts(db, None)

    alerts.delete_alert(db, volunteer, cat_alert.id)
    assert alerts.list_alerts(db, volunteer) == []

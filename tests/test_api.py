import io
import os

import auth
import media


def test_requires_sign_in(make_client):
    client = make_client()
    r = client.get("/api/favorites")
    assert r.status_code == 401
    assert r.json()["error_code"] == "UNAUTHORIZED"

    r = client.get("/auth/me")
    assert r.status_code == 401


def test_sign_in_callback_and_logout(make_client):
    client = make_client("vol-api", role="volunteer")
    r = client.get("/auth/me")
    assert r.status_code == 200
    assert r.json() == {"user_id": "vol-api", "role": "volunteer"}

    r = client.get("/logout", follow_redirects=False)
    assert r.status_code in (302, 303)
    assert client.get("/auth/me").status_code == 401


def test_bad_sign_in_code(make_client):
    client = make_client()
    r = client.get("/auth/callback", params={"code": "forged"}, follow_redirects=False)
    assert r.status_code == 401
    assert r.json()["error_code"] == "UNAUTHORIZED"


def test_callback_only_redirects_locally(make_client):
    client = make_client()
    code = auth.issue_sign_in_code("vol-redirect")
    r = client.get("/auth/callback", params={"code": code, "next": "//evil.example"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"


def test_session_expires(make_client, monkeypatch):
    client = make_client("vol-timeout", role="volunteer")
    assert client.get("/auth/me").status_code == 200

    monkeypatch.setattr(auth, "SESSION_MAX_AGE", -1)
    assert client.get("/auth/me").status_code == 401


def test_favorites_over_http(make_client, pet):
    client = make_client("vol-fav", role="volunteer")

    r = client.post("/api/favorites", json={"pet_id": pet.id})
    assert r.status_code == 201
    r = client.post("/api/favorites", json={"pet_id": pet.id})
    assert r.status_code == 409
    assert r.json()["error_code"] == "CONFLICT"

    assert client.get("/api/favorites/check", params={"pet_id": pet.id}).json() == {"is_favorite": True}
    listed = client.get("/api/favorites").json()
    assert listed[0]["pet"]["id"] == pet.id

    assert client.delete("/api/favorites", params={"pet_id": pet.id}).status_code == 200
    r = client.delete("/api/favorites", params={"pet_id": pet.id})
    assert r.status_code == 404
    assert r.json()["error_code"] == "NOT_FOUND"


def test_malformed_body_is_validation_error(make_client):
    client = make_client("vol-bad", role="volunteer")
    r = client.post("/api/favorites", json={"pet_id": "abc"})
    assert r.status_code == 400
    assert r.json()["error_code"] == "VALIDATION_ERROR"

    r = client.post("/api/favorites", json={})
    assert r.status_code == 400


def test_adoption_flow_over_http(make_client, shelter, pet):
    volunteer_client = make_client("vol-adopt", role="volunteer")
    shelter_client = make_client(shelter.user_id, role="shelter")

    r = shelter_client.post("/api/adoption-requests", json={"pet_id": pet.id})
    assert r.status_code == 403

    r = volunteer_client.post("/api/adoption-requests", json={"pet_id": pet.id, "message": "Please"})
    assert r.status_code == 201
    request_id = r.json()["id"]

    incoming = shelter_client.get("/api/adoption-requests", params={"status": "pending"}).json()
    assert [item["id"] for item in incoming] == [request_id]

    r = shelter_client.patch(f"/api/adoption-requests/{request_id}", json={"status": "approved"})
    assert r.status_code == 200
    assert r.json()["status"] == "approved"

    r = shelter_client.patch(f"/api/adoption-requests/{request_id}", json={"status": "rejected"})
    assert r.status_code == 409
    assert r.json()["error_code"] == "INVALID_TRANSITION"

    mine = volunteer_client.get("/api/adoption-requests").json()
    assert mine[0]["status"] == "approved"
    assert mine[0]["pet"]["name"] == "Milo"


def test_found_pet_report_counts_matches(make_client):
    watcher = make_client("vol-watch", role="volunteer")
    finder = make_client("vol-find", role="volunteer")

    r = watcher.post("/api/alerts", json={"pet_type": "dog", "location": {"lat": 40.0, "lng": -74.0, "radius": 5}})
    assert r.status_code == 201
    alert_id = r.json()["id"]

    r = finder.post("/api/found-pets", json={"type": "dog", "description": "Beagle",
                                             "location": {"lat": 40.0, "lng": -74.05}})
    assert r.status_code == 201
    body = r.json()
    assert body["matching_alerts"] == 1
    found_id = body["found_pet"]["id"]

    r = finder.post("/api/found-pets", json={"type": "dog", "description": "Beagle", "location": {"lat": 40.0}})
    assert r.status_code == 400

    assert watcher.patch(f"/api/alerts/{alert_id}/toggle").json()["active"] is False

    r = finder.patch("/api/found-pets", json={"id": found_id, "status": "rescued"})
    assert r.json()["status"] == "rescued"
    r = watcher.patch(f"/api/found-pets/{found_id}", json={"status": "processed"})
    assert r.status_code == 403

    public = make_client().get("/api/found-pets", params={"type": "dog"}).json()
    assert [fp["id"] for fp in public] == [found_id]
    assert [fp["id"] for fp in finder.get("/api/found-pets/mine").json()] == [found_id]

    assert finder.delete(f"/api/found-pets/{found_id}").status_code == 200
    assert make_client().get(f"/api/found-pets/{found_id}").status_code == 404
    assert watcher.delete("/api/alerts", params={"id": alert_id}).status_code == 200


def test_pet_management_over_http(make_client, shelter, other_shelter):
    owner = make_client(shelter.user_id, role="shelter")
    rival = make_client(other_shelter.user_id, role="shelter")

    r = owner.post("/api/pets", json={"name": "Rex", "sex": "male", "age": 4, "type": "dog"})
    assert r.status_code == 201
    pet_id = r.json()["id"]

    assert rival.patch(f"/api/pets/{pet_id}", json={"name": "Mine"}).status_code == 403
    assert owner.patch(f"/api/pets/{pet_id}", json={"health": "Neutered"}).json()["health"] == "Neutered"

    anonymous = make_client()
    assert anonymous.get(f"/api/pets/{pet_id}").json()["shelter"]["id"] == shelter.user_id
    assert [p["id"] for p in anonymous.get("/api/pets", params={"type": "dog,cat"}).json()] == [pet_id]
    assert len(anonymous.get("/api/pets/lending").json()) == 1
    assert anonymous.get(f"/api/shelters/{shelter.user_id}").json()["name"] == "happytails"

    assert owner.patch("/api/profile", json={"phone": "555-0100"}).json()["phone"] == "555-0100"

    assert owner.delete("/api/pets", params={"id": pet_id}).status_code == 200
    assert anonymous.get(f"/api/pets/{pet_id}").status_code == 404


def test_upload_image(make_client):
    client = make_client("vol-upload", role="volunteer")

    r = client.post("/api/upload", files={"file": ("notes.txt", io.BytesIO(b"hello"), "text/plain")})
    assert r.status_code == 400

    r = client.post("/api/upload", files={"file": ("my cat!.png", io.BytesIO(b"\x89PNG fake"), "image/png")})
    assert r.status_code == 200
    url = r.json()["url"]
    assert url.startswith("/static/uploads/found-pets/")
    assert url.endswith("-mycat.png")

    served = client.get(url)
    assert served.status_code == 200
    assert served.content == b"\x89PNG fake"


def test_upload_requires_sign_in(make_client):
    r = make_client().post("/api/upload", files={"file": ("a.png", io.BytesIO(b"x"), "image/png")})
    assert r.status_code == 401


def test_shelter_first_sign_in(make_client):
    client = make_client("shelter-fresh", role="shelter", email="paws@example.org")
    r = client.get("/auth/me")
    assert r.status_code == 200
    assert r.json() == {"user_id": "shelter-fresh", "role": "shelter"}

    r = client.get("/api/profile")
    assert r.json()["shelter"]["name"] == "paws"


def test_pet_text_fields_validated_over_http(make_client, shelter):
    client = make_client(shelter.user_id, role="shelter")
    r = client.post("/api/pets", json={"name": "X", "sex": "male", "age": 1, "type": "cat", "description": {"a": 1}})
    assert r.status_code == 400
    assert r.json()["error_code"] == "VALIDATION_ERROR"

    r = client.patch("/api/profile", json={"website": ["a", "b"]})
    assert r.status_code == 400


def _upload(client, name="cat.png"):
    r = client.post("/api/upload", files={"file": (name, io.BytesIO(b"\x89PNG data"), "image/png")})
    assert r.status_code == 200
    url = r.json()["url"]
    return url, os.path.join(media.UPLOAD_DIR, url[len(media.URL_PREFIX):])


def test_cannot_list_or_delete_someone_elses_upload(make_client, shelter):
    uploader = make_client("vol-uploader", role="volunteer")
    url, path = _upload(uploader)

    other = make_client(shelter.user_id, role="shelter")
    r = other.post("/api/pets", json={"name": "Rex", "sex": "male", "age": 4, "type": "dog", "images": [url]})
    assert r.status_code == 400

    pet_id = other.post("/api/pets", json={"name": "Rex", "sex": "male", "age": 4, "type": "dog"}).json()["id"]
    assert other.patch(f"/api/pets/{pet_id}", json={"images": [url]}).status_code == 400
    assert other.delete("/api/pets", params={"id": pet_id}).status_code == 200
    assert os.path.exists(path)


def test_deleting_own_report_removes_its_upload(make_client):
    client = make_client("vol-cleanup", role="volunteer")
    url, path = _upload(client)

    r = client.post("/api/found-pets", json={"type": "cat", "description": "Tabby",
                                             "location": {"lat": 1.0, "lng": 1.0}, "images": [url]})
    assert r.status_code == 201
    assert os.path.exists(path)

    assert client.delete(f"/api/found-pets/{r.json()['found_pet']['id']}").status_code == 200
    assert not os.path.exists(path)


def test_delete_images_skips_files_of_other_owners(make_client, db):
    url, path = _upload(make_client("vol-keeper", role="volunteer"))
    assert media.delete_images(db, "vol-intruder", [url]) == 0
    assert os.path.exists(path)
    assert media.delete_images(db, "vol-keeper", [url]) == 1
    assert not os.path.exists(path)

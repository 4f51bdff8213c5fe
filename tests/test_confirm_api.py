import json

from support import OWNER, PUBLIC_BASE, auth


async def _grant(http, file_name="song.mp3", file_type="audio/mpeg", user_id=OWNER, **extra):
    response = await http.post("/api/music/upload-url", headers=auth(user_id), json={
        "fileName": file_name,
        "fileType": file_type,
        **extra,
    })
    assert response.status_code == 200
    return response.json()


async def _put(http, grant, data=b"ID3 fake mp3 bytes"):
    headers = {**grant["headers"], "Content-Type": grant["contentType"]}
    response = await http.put(grant["uploadUrl"], content=data, headers=headers)
    assert response.status_code == 200


async def test_confirm_without_object_is_not_found(http, records):
    grant = await _grant(http)

    response = await http.post("/api/music/upload-complete", headers=auth(), json={"key": grant["key"]})

    assert response.status_code == 404
    assert response.json() == {"error": "File not found in storage"}
    assert records.records == []


async def test_confirm_creates_record_from_storage(http, storage, records, clock, producer):
    grant = await _grant(http, file_name="Bruno Mars - Leave The Door Open.mp3")
    await _put(http, grant, b"x" * 2048)

    response = await http.post("/api/music/upload-complete", headers=auth(), json={
        "key": grant["key"],
        "fileName": "Bruno Mars - Leave The Door Open.mp3",
        "fileSize": 10,
        "fileType": "audio/wav",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    music = body["music"]
    assert music["id"].startswith("music_")
    assert music["title"] == "Leave The Door Open"
    assert music["artist"] == "Bruno Mars"
    assert music["url"] == f"{PUBLIC_BASE}/{grant['key']}"
    assert music["size"] == 2048
    assert music["contentType"] == "audio/mpeg"

    [record] = records.records
    assert record.owner_id == OWNER
    assert record.object_key == grant["key"]
    assert record.uploaded_at == clock()
    assert [key for key, _ in producer.published] == ["music.uploaded"]


async def test_unparseable_name_gets_unknown_artist(http):
    grant = await _grant(http, file_name="demo take 3.mp3")
    await _put(http, grant)

    response = await http.post("/api/music/upload-complete", headers=auth(), json={"key": grant["key"]})

    assert response.status_code == 200
    assert response.json()["music"]["title"] == "demo take 3"
    assert response.json()["music"]["artist"] == "Unknown Artist"


async def test_explicit_title_and_artist_win(http):
    grant = await _grant(http)
    await _put(http, grant)

    response = await http.post("/api/music/upload-complete", headers=auth(), json={
        "key": grant["key"],
        "title": "Real Title",
        "artist": "Real Artist",
    })

    assert response.json()["music"]["title"] == "Real Title"
    assert response.json()["music"]["artist"] == "Real Artist"


async def test_owner_always_comes_from_the_credential(http, records):
    grant = await _grant(http, user_id="user-1")
    await _put(http, grant)

    response = await http.post("/api/music/upload-complete", headers=auth("user-2"), json={"key": grant["key"]})

    assert response.status_code == 400
    assert records.records == []


async def test_owner_fields_in_the_body_are_ignored(http, records):
    grant = await _grant(http, user_id="user-1", ownerId="user-2", userId="user-2")
    assert grant["key"].startswith("music/user-1/")
    await _put(http, grant)

    response = await http.post("/api/music/upload-complete", headers=auth("user-1"), json={
        "key": grant["key"],
        "ownerId": "user-2",
        "userId": "user-2",
    })

    assert response.status_code == 200
    [record] = records.records
    assert record.owner_id == "user-1"


async def test_signed_file_name_beats_the_client_claim(http, storage):
    grant = await _grant(http, file_name="Nina Simone - Feeling Good (live).mp3")
    assert grant["headers"] == {
        "x-amz-meta-owner-id": "user-1",
        "x-amz-meta-original-file-name": "Nina%20Simone%20-%20Feeling%20Good%20%28live%29.mp3",
    }
    await _put(http, grant)
    assert storage.objects[grant["key"]][1].metadata["owner-id"] == "user-1"

    response = await http.post("/api/music/upload-complete", headers=auth(), json={
        "key": grant["key"],
        "fileName": "something else.mp3",
    })

    music = response.json()["music"]
    assert music["title"] == "Feeling Good (live)"
    assert music["artist"] == "Nina Simone"


async def test_object_signed_for_another_user_is_refused(http, storage, records):
    storage.put("music/user-1/1-abcd-song.mp3", b"mp3", "audio/mpeg", metadata={"owner-id": "user-2"})

    response = await http.post("/api/music/upload-complete", headers=auth("user-1"), json={
        "key": "music/user-1/1-abcd-song.mp3",
    })

    assert response.status_code == 400
    assert response.json() == {"error": "File was uploaded by another user"}
    assert records.records == []


async def test_album_object_in_another_users_folder_cannot_be_confirmed(http, storage, records):
    await _grant(http, user_id="user-1")
    storage.put("music/user-1/01. evil.mp3", b"mp3", "audio/mpeg")

    response = await http.post("/api/music/upload-complete", headers=auth("user-2"), json={
        "key": "music/user-1/01. evil.mp3",
    })

    assert response.status_code == 400
    assert response.json() == {"error": "Album folder belongs to another user"}
    assert records.records == []


async def test_manifest_must_reference_stored_album_objects(http, storage, records):
    prefix = "music/my-album"
    storage.put(f"{prefix}/cover.jpg", b"jpg", "image/jpeg")
    manifest = {
        "title": "My Album",
        "artist": "Jane",
        "cover": f"{PUBLIC_BASE}/{prefix}/cover.jpg",
        "songs": [{"title": "a", "url": f"{PUBLIC_BASE}/{prefix}/01. a.mp3"}],
    }
    storage.put(f"{prefix}/metadata.json", json.dumps(manifest).encode(), "application/json")

    missing = await http.post("/api/music/upload-complete", headers=auth(), json={"key": f"{prefix}/metadata.json"})

    assert missing.status_code == 400
    assert missing.json()["error"].startswith("Album manifest references a missing object")

    manifest["songs"] = [{"title": "a", "url": f"{PUBLIC_BASE}/music/user-1/1-abcd-a.mp3"}]
    storage.put(f"{prefix}/metadata.json", json.dumps(manifest).encode(), "application/json")

    outside = await http.post("/api/music/upload-complete", headers=auth(), json={"key": f"{prefix}/metadata.json"})

    assert outside.status_code == 400
    assert outside.json()["error"].startswith("Album manifest points outside the album")

    storage.put(f"{prefix}/01. a.mp3", b"mp3", "audio/mpeg")
    manifest["songs"] = [{"title": "a", "url": f"{PUBLIC_BASE}/{prefix}/01. a.mp3"}]
    storage.put(f"{prefix}/metadata.json", json.dumps(manifest).encode(), "application/json")

    published = await http.post("/api/music/upload-complete", headers=auth(), json={"key": f"{prefix}/metadata.json"})

    assert published.status_code == 200
    assert [record.object_key for record in records.records] == [f"{prefix}/metadata.json"]


async def test_empty_object_is_rejected(http, storage, records):
    storage.put("music/user-1/1-abcd-empty.mp3", b"", "audio/mpeg")

    response = await http.post("/api/music/upload-complete", headers=auth(), json={
        "key": "music/user-1/1-abcd-empty.mp3",
    })

    assert response.status_code == 400
    assert records.records == []


async def test_record_store_failure_is_internal(http, records):
    grant = await _grant(http)
    await _put(http, grant)
    records.fail = True

    response = await http.post("/api/music/upload-complete", headers=auth(), json={"key": grant["key"]})

    assert response.status_code == 500
    assert response.json() == {"error": "Could not save upload record"}


async def test_confirm_requires_credential(http):
    response = await http.post("/api/music/upload-complete", json={"key": "music/user-1/1-a-x.mp3"})

    assert response.status_code == 401


async def test_signed_put_enforces_type_expiry_and_single_use(http, storage, clock):
    grant = await _grant(http)
    signed = {**grant["headers"], "Content-Type": "audio/mpeg"}

    wrong_type = await http.put(grant["uploadUrl"], content=b"abc", headers={**signed, "Content-Type": "audio/wav"})
    assert wrong_type.status_code == 403
    no_metadata = await http.put(grant["uploadUrl"], content=b"abc", headers={"Content-Type": "audio/mpeg"})
    assert no_metadata.status_code == 403

    await _put(http, grant)
    reused = await http.put(grant["uploadUrl"], content=b"abc", headers=signed)
    assert reused.status_code == 403

    late = await _grant(http)
    clock.advance(901)
    expired = await http.put(late["uploadUrl"], content=b"abc", headers={**late["headers"], "Content-Type": "audio/mpeg"})
    assert expired.status_code == 403
    assert late["key"] not in storage.objects


async def test_direct_upload_stores_and_confirms(http, storage, records):
    response = await http.post(
        "/api/music/upload",
        headers=auth(),
        files={"file": ("Artist - Song.mp3", b"y" * 512, "audio/mpeg")},
    )

    assert response.status_code == 200
    music = response.json()["music"]
    assert music["key"].startswith("music/user-1/")
    assert music["title"] == "Song"
    assert music["size"] == 512
    assert storage.data(music["key"]) == b"y" * 512
    assert storage.signed == {}
    assert len(records.records) == 1


async def test_direct_upload_rejects_unsupported_file(http, storage):
    response = await http.post(
        "/api/music/upload",
        headers=auth(),
        files={"file": ("x.exe", b"MZ", "application/octet-stream")},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Unsupported file type"}
    assert storage.objects == {}

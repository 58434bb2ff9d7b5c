import stripe

from parcel_api.store import RecordStore


def create_parcel(client, headers, **overrides):
    body = {"senderEmail": "a@x.com", "parcelName": "Box", "charge": 2200, "receiverName": "Bob"}
    body.update(overrides)
    return client.post("/parcels", json=body, headers=headers)


def test_welcome(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to Parcel Delivery API"}


def test_unknown_route(client):
    response = client.get("/no-such-route")
    assert response.status_code == 404
    assert response.json() == {"message": "Route Not Found"}


def test_missing_token_rejected(client):
    response = client.get("/parcels")
    assert response.status_code == 401
    assert response.json()["error"] == "auth_error"


def test_invalid_token_rejected(client):
    response = client.get("/parcels", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


def test_create_parcel(client, auth_headers):
    response = create_parcel(client, auth_headers("a@x.com"))

    assert response.status_code == 201
    parcel = response.json()
    assert parcel["senderEmail"] == "a@x.com"
    assert parcel["paymentStatus"] == "unpaid"
    assert parcel["trackingId"] is None
    assert parcel["parcelType"] == "document"


def test_create_parcel_for_someone_else(client, auth_headers):
    response = create_parcel(client, auth_headers("b@x.com"))
    assert response.status_code == 403


def test_create_parcel_rejects_unknown_fields(client, auth_headers):
    response = create_parcel(client, auth_headers("a@x.com"), paymentStatus="paid")
    assert response.status_code == 422


def test_list_parcels_defaults_to_caller(client, auth_headers):
    create_parcel(client, auth_headers("a@x.com"), parcelName="First", charge=100)
    create_parcel(client, auth_headers("a@x.com"), parcelName="Second", charge=300)
    create_parcel(client, auth_headers("b@x.com"), senderEmail="b@x.com", parcelName="Other")

    response = client.get("/parcels", headers=auth_headers("a@x.com"))
    assert response.status_code == 200
    assert {p["parcelName"] for p in response.json()} == {"First", "Second"}

    response = client.get("/parcels?sort=charge&order=asc", headers=auth_headers("a@x.com"))
    assert [p["parcelName"] for p in response.json()] == ["First", "Second"]


def test_list_parcels_bad_sort(client, auth_headers):
    response = client.get("/parcels?sort=password", headers=auth_headers("a@x.com"))
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_get_parcel(client, auth_headers):
    parcel_id = create_parcel(client, auth_headers("a@x.com")).json()["id"]

    response = client.get(f"/parcels/{parcel_id}", headers=auth_headers("a@x.com"))
    assert response.status_code == 200
    assert response.json()["id"] == parcel_id

    response = client.get(f"/parcels/{parcel_id}", headers=auth_headers("b@x.com"))
    assert response.status_code == 403


def test_get_parcel_malformed_and_missing(client, auth_headers):
    response = client.get("/parcels/not-an-id", headers=auth_headers("a@x.com"))
    assert response.status_code == 400

    response = client.get(f"/parcels/{'0' * 32}", headers=auth_headers("a@x.com"))
    assert response.status_code == 404
    assert response.json()["message"] == "Parcel Not Found"


def test_delete_parcel(client, auth_headers):
    parcel_id = create_parcel(client, auth_headers("a@x.com")).json()["id"]

    response = client.delete(f"/parcels/{parcel_id}", headers=auth_headers("a@x.com"))
    assert response.status_code == 200
    assert response.json() == {"deletedCount": 1}

    response = client.delete(f"/parcels/{parcel_id}", headers=auth_headers("a@x.com"))
    assert response.status_code == 404


def test_create_payment_success(client, auth_headers, created_session, mocker):
    parcel_id = create_parcel(client, auth_headers("a@x.com")).json()["id"]
    create = mocker.patch(
        "stripe.checkout.Session.create",
        return_value=created_session("cs_test_1"),
    )

    response = client.post(
        "/payments",
        json={"parcelId": parcel_id, "charge": 2200, "parcelName": "Box", "senderEmail": "a@x.com"},
        headers=auth_headers("a@x.com"),
    )

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_1"}
    kwargs = create.call_args.kwargs
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 2000
    assert kwargs["metadata"] == {"parcelId": parcel_id, "parcelName": "Box"}


def test_create_payment_stripe_error(client, auth_headers, mocker):
    parcel_id = create_parcel(client, auth_headers("a@x.com")).json()["id"]
    mocker.patch("stripe.checkout.Session.create", side_effect=stripe.APIConnectionError("Stripe Service Unavailable"))

    response = client.post(
        "/payments",
        json={"parcelId": parcel_id, "charge": 2200, "parcelName": "Box", "senderEmail": "a@x.com"},
        headers=auth_headers("a@x.com"),
    )

    assert response.status_code == 502
    assert response.json()["success"] is False
    parcel = client.get(f"/parcels/{parcel_id}", headers=auth_headers("a@x.com")).json()
    assert parcel["paymentStatus"] == "unpaid"


def test_settle_payment(client, auth_headers, checkout_session, mocker):
    parcel_id = create_parcel(client, auth_headers("a@x.com")).json()["id"]
    mocker.patch("stripe.checkout.Session.retrieve", return_value=checkout_session(parcel_id))

    response = client.patch("/payments?sessionId=sess_1", headers=auth_headers("a@x.com"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["alreadySettled"] is False
    assert body["transactionId"] == "pi_123"
    assert body["payment"]["parcelId"] == parcel_id
    assert body["payment"]["trackingId"] == body["trackingId"]

    parcel = client.get(f"/parcels/{parcel_id}", headers=auth_headers("a@x.com")).json()
    assert parcel["paymentStatus"] == "paid"
    assert parcel["trackingId"] == body["trackingId"]


def test_settle_unpaid_session(client, auth_headers, checkout_session, mocker):
    parcel_id = create_parcel(client, auth_headers("a@x.com")).json()["id"]
    mocker.patch("stripe.checkout.Session.retrieve", return_value=checkout_session(parcel_id, payment_status="unpaid"))

    response = client.patch("/payments?sessionId=sess_1", headers=auth_headers("a@x.com"))

    assert response.status_code == 200
    assert response.json() == {"success": False, "paid": False}


def test_settle_unknown_session(client, auth_headers, mocker):
    mocker.patch(
        "stripe.checkout.Session.retrieve",
        side_effect=stripe.InvalidRequestError("No such checkout.session: nope", "id"),
    )

    response = client.patch("/payments?sessionId=nope", headers=auth_headers("a@x.com"))

    assert response.status_code == 502
    assert response.json()["error"] == "adapter_error"


def test_payments_ownership_mismatch_runs_no_query(client, auth_headers, mocker):
    find = mocker.spy(RecordStore, "find")

    response = client.get("/payments?customerEmail=b@x.com", headers=auth_headers("a@x.com"))

    assert response.status_code == 403
    assert response.json()["error"] == "auth_error"
    assert find.call_count == 0


def test_register_user_is_idempotent(client, auth_headers):
    headers = auth_headers("a@x.com")

    first = client.post("/users", json={"email": "a@x.com", "displayName": "Ann"}, headers=headers)
    second = client.post("/users", json={"email": "a@x.com", "displayName": "Ann"}, headers=headers)

    assert first.status_code == 200
    assert first.json()["role"] == "user"
    assert second.json()["id"] == first.json()["id"]

    response = client.get("/users/a@x.com/role", headers=headers)
    assert response.json() == {"role": "user"}


def test_rider_application_and_approval(client, auth_headers, store):
    store.insert_one("users", {"email": "admin@x.com", "role": "admin"})
    client.post("/users", json={"email": "r@x.com"}, headers=auth_headers("r@x.com"))

    response = client.post(
        "/riders",
        json={"email": "r@x.com", "name": "Rita", "region": "Dhaka", "age": 25},
        headers=auth_headers("r@x.com"),
    )
    assert response.status_code == 201
    rider = response.json()
    assert rider["status"] == "pending"

    # non-admins only see their own applications
    response = client.get("/riders?status=pending", headers=auth_headers("someone@x.com"))
    assert response.json() == []

    response = client.patch(f"/riders/{rider['id']}", json={"status": "approved"}, headers=auth_headers("r@x.com"))
    assert response.status_code == 403

    response = client.get("/riders?status=pending", headers=auth_headers("admin@x.com"))
    assert [r["id"] for r in response.json()] == [rider["id"]]

    response = client.patch(f"/riders/{rider['id']}", json={"status": "approved"}, headers=auth_headers("admin@x.com"))
    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert store.find_one("users", {"email": "r@x.com"})["role"] == "rider"


def test_duplicate_rider_application(client, auth_headers):
    headers = auth_headers("r@x.com")
    body = {"email": "r@x.com", "name": "Rita"}

    assert client.post("/riders", json=body, headers=headers).status_code == 201
    response = client.post("/riders", json=body, headers=headers)
    assert response.status_code == 409


def test_approving_rider_without_user_record_creates_one(client, auth_headers, store):
    store.insert_one("users", {"email": "admin@x.com", "role": "admin"})
    rider = client.post(
        "/riders",
        json={"email": "new@x.com", "name": "Nia"},
        headers=auth_headers("new@x.com"),
    ).json()

    response = client.patch(f"/riders/{rider['id']}", json={"status": "approved"}, headers=auth_headers("admin@x.com"))

    assert response.status_code == 200
    user = store.find_one("users", {"email": "new@x.com"})
    assert user["role"] == "rider"
    assert user["display_name"] == "Nia"

"""
Point d'entrée Flask.

L'API Flask est un thin adapter : elle convertit les requêtes HTTP
en commands, les envoie au message bus, et convertit les résultats
en réponses HTTP. Elle ne contient aucune logique métier.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from flask import Flask, jsonify, request

from batch_inventory import config
from batch_inventory.domain import commands, model
from batch_inventory.domain.ledger import BatchEvent, reference_from_columns
from batch_inventory.service_layer import bootstrap
from batch_inventory.views import views

logging.basicConfig(
    level=config.get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = Flask(__name__)
bus = bootstrap.bootstrap()


def _event_json(event: BatchEvent | None) -> dict | None:
    if event is None:
        return None
    return {
        "id": event.id,
        "timestamp": event.timestamp.isoformat() if event.timestamp else None,
        "type": event.type.value,
        "product_id": event.product_id,
        "location_id": event.location_id,
        "batch_no": event.batch_no,
        "qty": event.qty,
        "ref_type": event.ref_type,
        "ref_id": event.ref_id,
        "note": event.note,
    }


def _failure(error: model.BatchInventoryError | None):
    if isinstance(error, model.NotFoundError):
        status = 404
    elif isinstance(error, model.NegativeStockError):
        status = 409
    else:
        status = 400
    return jsonify({"success": False, "message": str(error)}), status


@app.errorhandler(model.ValidationError)
def validation_error(e: model.ValidationError):
    return jsonify({"message": str(e), "errors": e.errors}), 400


@app.errorhandler(model.NotFoundError)
def not_found_error(e: model.NotFoundError):
    return jsonify({"message": str(e)}), 404


@app.errorhandler(model.ConsistencyError)
def consistency_error(e: model.ConsistencyError):
    return jsonify({"message": str(e)}), 409


# --- Écritures ---


@app.route("/products", methods=["POST"])
def create_product_endpoint():
    data = request.json
    bus.handle(commands.CreateProduct(
        product_id=data["product_id"],
        sku=data["sku"],
        name=data.get("name", ""),
        is_batch_tracked=data.get("is_batch_tracked", True),
        shelf_life_days=data.get("shelf_life_days"),
        reserved=data.get("reserved", 0),
    ))
    return "OK", 201


@app.route("/products/<product_id>/batch-tracking", methods=["PATCH"])
def batch_tracking_endpoint(product_id: str):
    data = request.json
    [updated] = bus.handle(commands.UpdateProductBatchTracking(
        product_id=product_id,
        is_batch_tracked=data["is_batch_tracked"],
        shelf_life_days=data.get("shelf_life_days"),
    ))
    if not updated:
        return jsonify({"message": f"Produit inconnu : {product_id}"}), 404
    return jsonify({"success": True}), 200


@app.route("/batches/receive", methods=["POST"])
def receive_batch_endpoint():
    """
    POST /batches/receive
    Body JSON : { product_id, location_id, batch_no, qty,
                  mfg_date?, expiry_date?, ref_type?, ref_id?, note? }
    """
    data = request.json
    try:
        reference = reference_from_columns(data.get("ref_type"), data.get("ref_id"))
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    [result] = bus.handle(commands.ReceiveBatch(
        product_id=data["product_id"],
        location_id=data["location_id"],
        batch_no=data["batch_no"],
        qty=data["qty"],
        mfg_date=data.get("mfg_date"),
        expiry_date=data.get("expiry_date"),
        reference=reference,
        note=data.get("note"),
    ))
    batch = asdict(result.batch)
    for name in ("mfg_date", "expiry_date"):
        if batch[name] is not None:
            batch[name] = batch[name].isoformat()
    return jsonify({"batch": batch, "event": _event_json(result.event)}), 201


@app.route("/batches/adjust", methods=["POST"])
def adjust_batch_endpoint():
    data = request.json
    [result] = bus.handle(commands.AdjustBatch(
        product_id=data["product_id"],
        location_id=data["location_id"],
        batch_no=data["batch_no"],
        qty_change=data["qty_change"],
        note=data.get("note"),
    ))
    if not result.success:
        return _failure(result.error)
    return jsonify({"success": True, "event": _event_json(result.event)}), 200


@app.route("/batches/transfer", methods=["POST"])
def transfer_batch_endpoint():
    data = request.json
    [result] = bus.handle(commands.TransferBatch(
        product_id=data["product_id"],
        batch_no=data["batch_no"],
        from_location_id=data["from_location_id"],
        to_location_id=data["to_location_id"],
        qty=data["qty"],
        transfer_id=data.get("transfer_id"),
        note=data.get("note"),
    ))
    if not result.success:
        return _failure(result.error)
    return jsonify({"success": True, "events": [_event_json(e) for e in result.events]}), 200


@app.route("/sales", methods=["POST"])
def record_sale_endpoint():
    data = request.json
    [result] = bus.handle(commands.RecordSale(
        product_id=data["product_id"],
        order_id=data["order_id"],
        qty=data["qty"],
        location_id=data.get("location_id"),
    ))
    if not result.success:
        response, status = _failure(result.error)
        if result.plan is not None:
            body = response.get_json()
            body.update(fulfilled=result.plan.fulfilled, shortfall=result.plan.shortfall)
            response = jsonify(body)
        return response, status
    return jsonify({
        "success": True,
        "fulfilled": result.plan.fulfilled,
        "picks": [
            {"batch_no": p.batch_no, "location_id": p.location_id, "qty": p.qty}
            for p in result.plan
        ],
        "events": [_event_json(e) for e in result.events],
    }), 201


@app.route("/returns", methods=["POST"])
def record_return_endpoint():
    data = request.json
    [result] = bus.handle(commands.RecordReturn(
        product_id=data["product_id"],
        location_id=data["location_id"],
        batch_no=data["batch_no"],
        qty=data["qty"],
        return_id=data["return_id"],
        note=data.get("note"),
    ))
    if not result.success:
        return _failure(result.error)
    return jsonify({"success": True, "event": _event_json(result.event)}), 201


@app.route("/products/<product_id>/batches/<location_id>/<batch_no>", methods=["DELETE"])
def delete_batch_endpoint(product_id: str, location_id: str, batch_no: str):
    [result] = bus.handle(commands.DeleteBatch(product_id, location_id, batch_no))
    if not result.success:
        return _failure(result.error)
    return "", 204


@app.route("/products/<product_id>/sync", methods=["POST"])
def sync_endpoint(product_id: str):
    [synced] = bus.handle(commands.SyncProductStock(product_id))
    return jsonify({"synced": synced}), 200


@app.route("/products/<product_id>/rebuild", methods=["POST"])
def rebuild_endpoint(product_id: str):
    [corrections] = bus.handle(commands.RebuildFromLog(product_id))
    return jsonify([
        {
            "location_id": c.key.location_id,
            "batch_no": c.key.batch_no,
            "materialized_qty": c.materialized_qty,
            "replayed_qty": c.replayed_qty,
        }
        for c in corrections
    ]), 200


# --- Lectures ---


def _today():
    # même horloge que les handlers (RecordSale)
    return bus.dependencies["clock"]()


@app.route("/products/<product_id>", methods=["GET"])
def product_summary_endpoint(product_id: str):
    result = views.product_summary(product_id, bus.uow, today=_today())
    if result is None:
        return "not found", 404
    return jsonify(result), 200


@app.route("/products/<product_id>/batches", methods=["GET"])
def product_batches_endpoint(product_id: str):
    return jsonify(views.product_batches(
        product_id, bus.uow, location_id=request.args.get("location_id"), today=_today(),
    )), 200


@app.route("/products/<product_id>/events", methods=["GET"])
def batch_events_endpoint(product_id: str):
    return jsonify(views.batch_events(
        product_id,
        bus.uow,
        location_id=request.args.get("location_id"),
        batch_no=request.args.get("batch_no"),
    )), 200


@app.route("/products/<product_id>/fifo", methods=["GET"])
def fifo_endpoint(product_id: str):
    qty = request.args.get("qty", type=int)
    if qty is None:
        return jsonify({"message": "qty est requis"}), 400
    return jsonify(views.fifo_plan(
        product_id, qty, bus.uow, location_id=request.args.get("location_id"), today=_today(),
    )), 200


@app.route("/products/<product_id>/batch-numbers", methods=["GET"])
def batch_numbers_endpoint(product_id: str):
    return jsonify(views.batch_numbers(product_id, bus.uow)), 200


@app.route("/products/<product_id>/consistency", methods=["GET"])
def consistency_endpoint(product_id: str):
    strict = request.args.get("strict") == "1"
    return jsonify(views.check_consistency(product_id, bus.uow, raise_on_mismatch=strict)), 200


@app.route("/locations", methods=["GET"])
def locations_endpoint():
    return jsonify(views.locations(bus.uow)), 200

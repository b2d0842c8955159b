"""Flask dashboard for weight history."""

import logging

from flask import Flask, Response, jsonify, request

import db
from config import DASHBOARD_HOST, DASHBOARD_PORT
from decode import bmi_category
from errors import PersistenceError
from export import export_filename, measurements_to_csv

log = logging.getLogger(__name__)

app = Flask(__name__)


def with_category(measurement: dict) -> dict:
    """Attach the BMI category label and colour to a measurement."""
    category = bmi_category(measurement["bmi"] or 0)
    return {**measurement, "category": category.label, "color_tag": category.color_tag}


def is_positive_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


@app.errorhandler(PersistenceError)
def persistence_error(err: PersistenceError):
    log.error("Store failure: %s", err)
    return jsonify({"error": "Storage error"}), 500


@app.route("/api/user", methods=["GET"])
def get_user():
    """Return the user profile."""
    user = db.get_user()
    if not user:
        return jsonify({"error": "No user set up"}), 404
    return jsonify(user)


@app.route("/api/user", methods=["POST"])
def save_user():
    """Create or update the user profile (onboarding)."""
    data = request.get_json(silent=True)
    if not data or not data.get("name"):
        return jsonify({"error": "Name is required"}), 400

    height = data.get("height")
    if not is_positive_number(height):
        return jsonify({"error": "Height must be a positive number of centimeters"}), 400

    target_weight = data.get("target_weight")
    if target_weight is not None and not is_positive_number(target_weight):
        return jsonify({"error": "Target weight must be a positive number of kilograms"}), 400

    existing = db.get_user()
    user_id = db.save_user(
        name=data["name"],
        height=int(height),
        target_weight=target_weight,
        user_id=existing["id"] if existing else None,
    )
    return jsonify({"id": user_id}), 200 if existing else 201


@app.route("/api/measurements")
def list_measurements():
    """Return recent measurements, newest first."""
    limit_param = request.args.get("limit")
    limit = int(limit_param) if limit_param and limit_param.isdigit() else 100

    measurements = db.get_measurements(limit=limit)
    return jsonify([with_category(m) for m in measurements])


@app.route("/api/latest")
def latest_measurement():
    """Return the most recent measurement with its BMI category.

    `change` is the weight difference to the previous measurement, or null
    when there is none.
    """
    recent = db.get_measurements(limit=2)
    if not recent:
        return jsonify({"error": "No measurements yet"}), 404

    latest = with_category(recent[0])
    latest["change"] = round(recent[0]["weight"] - recent[1]["weight"], 1) if len(recent) > 1 else None
    return jsonify(latest)


@app.route("/api/measurements/<int:measurement_id>", methods=["DELETE"])
def delete_measurement(measurement_id: int):
    """Delete a measurement."""
    if not db.delete_measurement(measurement_id):
        return jsonify({"error": "Measurement not found"}), 404
    return jsonify({"deleted": True})


@app.route("/api/export.csv")
def export_csv():
    """Download the measurement history as CSV."""
    content = measurements_to_csv(db.get_measurements(limit=-1))
    return Response(
        content.encode("utf-8"),
        mimetype="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={export_filename()}",
        },
    )


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    db.init_db()
    app.run(host=DASHBOARD_HOST, port=DASHBOARD_PORT, debug=False)

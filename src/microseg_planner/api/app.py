"""
Flask REST API for the micro-segmentation planner.

Provides endpoints for per-connection configuration, readiness reports,
base object generation and per-VM isolation. Requests are stateless:
every isolation call re-reads the VM status into a session private to
that request and composes the isolate body server-side.
"""

from __future__ import annotations

import time

from flask import Flask, jsonify, request

from ..errors import PartialApplyError, TransportError, ValidationError
from ..generation.planner import ChangePlanGenerator
from ..isolation.session import SessionTracker
from ..service import MicrosegService, service_from_env


def create_app(service: MicrosegService | None = None) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)

    svc = service or service_from_env()
    prefix = "/api/v1/microseg/<connection_id>"

    @app.errorhandler(ValidationError)
    def validation_error(e: ValidationError):
        return jsonify({"error": "validation_error", "message": str(e)}), 400

    @app.errorhandler(TransportError)
    def transport_error(e: TransportError):
        return jsonify(e.to_dict()), 502

    @app.errorhandler(PartialApplyError)
    def partial_apply(e: PartialApplyError):
        return jsonify({
            "error": "partial_apply",
            "message": str(e),
            "result": e.result.to_dict(),
        }), 207

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "healthy", "timestamp": time.time()})

    # --- Configuration ---

    @app.route(f"{prefix}/config", methods=["GET"])
    def config_get(connection_id: str):
        config = svc.config(connection_id)
        return jsonify({**config.to_dict(), "gateway_offset": config.gateway_offset})

    @app.route(f"{prefix}/config", methods=["PUT"])
    def config_update(connection_id: str):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "validation_error", "message": "JSON object required"}), 400
        config = svc.update_config(connection_id, data)
        return jsonify({**config.to_dict(), "gateway_offset": config.gateway_offset})

    @app.route(f"{prefix}/config/patterns", methods=["POST"])
    def pattern_add(connection_id: str):
        data = request.get_json(silent=True) or {}
        config = svc.add_pattern(connection_id, str(data.get("pattern", "")))
        return jsonify({"exclude_patterns": list(config.exclude_patterns)}), 201

    @app.route(f"{prefix}/config/patterns/<pattern>", methods=["DELETE"])
    def pattern_remove(connection_id: str, pattern: str):
        config = svc.remove_pattern(connection_id, pattern)
        return jsonify({"exclude_patterns": list(config.exclude_patterns)})

    @app.route(f"{prefix}/config/patterns/reset", methods=["POST"])
    def pattern_reset(connection_id: str):
        config = svc.reset_patterns(connection_id)
        return jsonify({"exclude_patterns": list(config.exclude_patterns)})

    # --- Readiness and generation ---

    @app.route(f"{prefix}/report", methods=["GET"])
    def report(connection_id: str):
        rep = svc.report(connection_id, refresh=True)
        config = svc.config(connection_id)
        return jsonify({
            **rep.to_dict(show_excluded=config.show_excluded),
            "generation_enabled": ChangePlanGenerator.is_enabled(rep),
            "pending_changes": svc.pending_changes(connection_id).to_dict(),
        })

    @app.route(f"{prefix}/preview", methods=["POST"])
    def preview(connection_id: str):
        svc.analyze(connection_id)
        result = svc.preview(connection_id)
        if result is None:
            return jsonify({"enabled": False, "plan": [], "can_confirm": False})
        return jsonify({
            **result.to_dict(),
            "enabled": True,
            "can_confirm": ChangePlanGenerator.can_confirm(result),
        })

    @app.route(f"{prefix}/apply", methods=["POST"])
    def apply(connection_id: str):
        svc.analyze(connection_id)
        result = svc.apply(connection_id)
        if result is None:
            return jsonify({"enabled": False})
        return jsonify({**result.to_dict(), "enabled": True})

    # --- VMs and isolation ---

    @app.route(f"{prefix}/vms", methods=["GET"])
    def vms(connection_id: str):
        rows = svc.vm_rows(
            connection_id,
            network=request.args.get("network") or None,
            search=request.args.get("search", ""),
        )
        return jsonify({"count": len(rows), "vms": rows})

    @app.route(f"{prefix}/vm/<node>/<vm_type>/<int:vmid>", methods=["GET"])
    def vm_plan(connection_id: str, node: str, vm_type: str, vmid: int):
        vm = svc.find_vm(connection_id, node, vm_type, vmid)
        if vm is None:
            return jsonify({"error": "vm_not_found"}), 404

        session = svc.open_session(connection_id, vm, SessionTracker())
        try:
            impact = svc.impact_view(session)
            return jsonify({
                "vm": vm.to_dict(),
                "status": session.status.to_dict() if session.status else None,
                "interfaces": [opt.to_dict() for opt in session.options],
                "selected_interfaces": session.selected_interfaces,
                "security_level": session.security_level.value,
                "can_isolate": session.can_isolate(),
                "impact": impact.to_dict() if impact else None,
            })
        finally:
            svc.close_session(session)

    @app.route(f"{prefix}/vm/<node>/<vm_type>/<int:vmid>/isolate", methods=["POST"])
    def vm_isolate(connection_id: str, node: str, vm_type: str, vmid: int):
        data = request.get_json(silent=True) or {}
        vm = svc.find_vm(connection_id, node, vm_type, vmid)
        if vm is None:
            return jsonify({"error": "vm_not_found"}), 404

        session = svc.open_session(connection_id, vm, SessionTracker())
        try:
            interfaces = data.get("interfaces")
            if interfaces is not None:
                if not isinstance(interfaces, list):
                    raise ValidationError("interfaces must be a list")
                refused = session.select(interfaces)
                if refused:
                    raise ValidationError(
                        f"Interface(s) not selectable: {', '.join(refused)}"
                    )
            session.set_security_level(data.get("security_level", "standard"))
            result = svc.isolate(session)
        finally:
            svc.close_session(session)
        return jsonify(result.to_dict())

    return app

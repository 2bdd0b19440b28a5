"""
Mock Paystack + Flutterwave verification server.

Transactions are seeded over HTTP (or passed to create_app) and answered in
each gateway's verify-response shape. POST /_outage makes every verify call
return 503 until cleared.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class SeededTransaction(BaseModel):
    gateway: str  # paystack | flutterwave
    transaction_id: str
    status: str = "success"
    amount_naira: float
    email: str
    plan_id: Optional[str] = "basic"
    points_count: Optional[int] = None
    currency: str = "NGN"


def create_app(transactions: Dict[str, SeededTransaction] | None = None) -> FastAPI:
    app = FastAPI(title="Mock Gateway Server", version="1.0.0")
    app.state.transactions = dict(transactions or {})
    app.state.outage = False
    app.state.verify_calls = 0

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/_seed")
    def seed(tx: SeededTransaction):
        app.state.transactions[tx.transaction_id] = tx
        return {"seeded": tx.transaction_id}

    @app.post("/_outage")
    def set_outage(enabled: bool = True):
        app.state.outage = enabled
        return {"outage": enabled}

    def lookup(gateway: str, transaction_id: str) -> SeededTransaction:
        app.state.verify_calls += 1
        if app.state.outage:
            raise HTTPException(status_code=503, detail="gateway down")
        tx = app.state.transactions.get(transaction_id)
        if tx is None or tx.gateway != gateway:
            raise HTTPException(status_code=404, detail="transaction not found")
        return tx

    @app.get("/transaction/verify/{reference}")
    def paystack_verify(reference: str):
        tx = lookup("paystack", reference)
        metadata: Dict[str, Any] = {"planId": tx.plan_id, "custom_fields": []}
        if tx.points_count is not None:
            metadata["custom_fields"].append(
                {"display_name": "Points Purchase", "variable_name": "points_count", "value": tx.points_count}
            )
        return JSONResponse(
            content={
                "status": True,
                "message": "Verification successful",
                "data": {
                    "reference": tx.transaction_id,
                    "status": tx.status,
                    "amount": int(round(tx.amount_naira * 100)),
                    "currency": tx.currency,
                    "customer": {"email": tx.email},
                    "metadata": metadata,
                },
            }
        )

    @app.get("/v3/transactions/{transaction_id}/verify")
    def flutterwave_verify(transaction_id: str):
        tx = lookup("flutterwave", transaction_id)
        return JSONResponse(
            content={
                "status": "success",
                "message": "Transaction fetched successfully",
                "data": {
                    "id": tx.transaction_id,
                    "status": tx.status,
                    "amount": tx.amount_naira,
                    "currency": tx.currency,
                    "customer": {"email": tx.email},
                    "meta": {"planId": tx.plan_id, "pointsCount": tx.points_count},
                },
            }
        )

    return app


app = create_app()

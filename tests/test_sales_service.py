from datetime import datetime, timezone

import httpx
import pytest

from backoffice.services import sales_service
from backoffice.services.api_client import ApiError, ValidationError

from tests.conftest import CASHIER, PASSWORD


TZ = "Africa/Nairobi"


@pytest.fixture
def cashier_session(make_session):
    session = make_session()
    assert session.login(CASHIER["email"], PASSWORD).ok
    return session


class TestCogsPurchase:

    def test_only_known_fields_are_forwarded(self, admin_session, backend):
        backend.on("POST", "/cogs", status=201, body={"data": {"id": 9}})

        created = sales_service.create_cogs_purchase(admin_session, {
            "amount": "KES 3,000",
            "description": "Bulk water",
            "bottle_size_id": "2",
            "unit_cost_carton": "150",
            "payment_method": "",
            "unexpected": "dropped",
        })

        assert created == {"id": 9}
        assert backend.calls_to("/cogs")[-1].body == {
            "amount": 3000.0,
            "description": "Bulk water",
            "bottle_size_id": 2,
            "unit_cost_carton": 150.0,
        }

    @pytest.mark.parametrize("amount", [None, "", "0", -5, "KES"])
    def test_amount_must_be_positive(self, admin_session, backend, amount):
        with pytest.raises(ValidationError):
            sales_service.create_cogs_purchase(admin_session, {"amount": amount})

        assert backend.calls_to("/cogs") == []


class TestExpenses:

    def test_create_expense_returns_normalized_record(self, admin_session, backend):
        backend.on("POST", "/expenses", status=201, body={"data": {
            "id": 4, "amount": "500", "category": "Rent", "created_at": "2024-01-01T22:00:00Z",
        }})

        record = sales_service.create_expense(admin_session, TZ, {"amount": "500", "category": "Rent"})

        assert record.id == 4
        assert record.amount == 500.0
        assert record.category == "rent"
        assert record.date == "2024-01-02"

    def test_create_expense_rejects_zero(self, admin_session):
        with pytest.raises(ValidationError):
            sales_service.create_expense(admin_session, TZ, {"amount": 0})

    def test_list_expenses_passes_range(self, admin_session, backend):
        backend.on("GET", "/expenses", body=[{"amount": 10, "date": "2024-01-01"}])

        records = sales_service.list_expenses(admin_session, TZ, date_from="2024-01-01", date_to=None)

        assert len(records) == 1
        assert backend.calls_to("/expenses")[-1].params == {"date_from": "2024-01-01"}


class TestPassthroughs:

    def test_sales_list_shapes(self, admin_session, backend):
        backend.on("GET", "/retail-sales", body={"sales": [{"id": 1}], "pagination": {"page": 2}})

        res = sales_service.list_sales(admin_session, page=2, customer_id=None)

        assert res == {"data": [{"id": 1}], "pagination": {"page": 2}}
        assert backend.calls_to("/retail-sales")[-1].params == {"page": "2"}

    def test_customers_and_reference_data(self, admin_session, backend):
        backend.on("GET", "/customers", body={"data": [{"id": 1, "name": "Walk-in"}]})
        backend.on("GET", "/bottle-sizes", body=[{"id": 1, "label": "1L"}])
        backend.on("GET", "/stock-balances", body={"data": None})

        assert sales_service.list_customers(admin_session) == [{"id": 1, "name": "Walk-in"}]
        assert sales_service.fetch_bottle_sizes(admin_session) == [{"id": 1, "label": "1L"}]
        assert sales_service.fetch_stock_balances(admin_session) == []

    def test_packaging(self, admin_session, backend):
        backend.on("GET", "/packaging", body={"data": [{"id": 3}], "pagination": {"total": 1}})
        backend.on("POST", "/packaging", status=201, body={"data": {"id": 4}})

        listing = sales_service.list_packaging(admin_session, page=1, per_page=10)
        created = sales_service.create_packaging(admin_session, bottle_size_id="1", cartons="6", date="2024-01-01")

        assert listing["data"] == [{"id": 3}]
        assert created == {"id": 4}
        assert backend.calls_to("/packaging", "POST")[-1].body == {"bottle_size_id": 1, "cartons": 6, "date": "2024-01-01"}

    def test_packaging_rejects_non_positive_cartons(self, admin_session):
        with pytest.raises(ValidationError):
            sales_service.create_packaging(admin_session, bottle_size_id=1, cartons=0)


def csv_handler(request):
    return httpx.Response(200, content=b"id,total\n1,500\n", headers={"Content-Type": "text/csv"})


class TestSales:

    def test_create_get_update(self, cashier_session, backend):
        backend.on("POST", "/retail-sales", status=201, body={"data": {"id": 101, "total": 500}})
        backend.on("GET", "/retail-sales/101", body={"data": {"id": 101, "total": 500}})
        backend.on("PUT", "/retail-sales/101", body={"data": {"id": 101, "total": 450}})

        created = sales_service.create_sale(cashier_session, {"customer_id": 1, "items": [{"bottle_size_id": 1, "cartons": 2}]})
        fetched = sales_service.get_sale(cashier_session, 101)
        updated = sales_service.update_sale(cashier_session, 101, {"total": 450})

        assert created == {"id": 101, "total": 500}
        assert fetched["total"] == 500
        assert updated["total"] == 450
        assert backend.calls_to("/retail-sales", "POST")[-1].body["items"] == [{"bottle_size_id": 1, "cartons": 2}]

    def test_delete_and_restore(self, admin_session, backend):
        backend.on("DELETE", "/retail-sales/101", body={"message": "deleted"})
        backend.on("POST", "/retail-sales/101/restore", body={"message": "Sale restored"})

        assert sales_service.delete_sale(admin_session, 101) is True
        assert sales_service.restore_sale(admin_session, 101) == {"message": "Sale restored"}

    def test_restore_returns_sale_when_sent(self, admin_session, backend):
        backend.on("POST", "/retail-sales/101/restore", body={"data": {"id": 101, "deleted": False}})

        assert sales_service.restore_sale(admin_session, 101) == {"id": 101, "deleted": False}

    def test_by_receipt_and_items(self, cashier_session, backend):
        backend.on("GET", "/retail-sales/by-receipt/R-0001", body={"data": {"id": 101}})
        backend.on("GET", "/retail-sales/101/items", body={"data": [{"id": 1}, {"id": 2}]})

        assert sales_service.get_sale_by_receipt(cashier_session, "R-0001") == {"id": 101}
        assert len(sales_service.list_sale_items(cashier_session, 101)) == 2

    def test_backend_refusal_propagates(self, cashier_session, backend):
        backend.on("DELETE", "/retail-sales/101", status=403, body={"error": "Admins only"})

        with pytest.raises(ApiError) as info:
            sales_service.delete_sale(cashier_session, 101)

        assert info.value.status == 403
        assert cashier_session.is_logged_in


class TestPayments:

    def test_payment_body(self, cashier_session, backend):
        backend.on("POST", "/retail-sales/101/payments", status=201, body={"data": {"id": 7, "amount": 500}})

        payment = sales_service.create_payment(cashier_session, 101, amount="KES 500", payment_method="mpesa")

        assert payment == {"id": 7, "amount": 500}
        assert backend.calls_to("/retail-sales/101/payments", "POST")[-1].body == {
            "amount": 500.0,
            "payment_method": "mpesa",
        }

    def test_credit_payment_returns_whole_response(self, cashier_session, backend):
        backend.on("POST", "/credit-sales/101/payments", status=201, body={
            "ok": True, "message": "Payment recorded", "email_sent": True, "data": {"id": 8},
        })

        res = sales_service.create_credit_payment(cashier_session, 101, amount=200, date="2024-01-02")

        assert res["email_sent"] is True
        assert res["data"] == {"id": 8}
        assert backend.calls_to("/credit-sales/101/payments")[-1].body == {"amount": 200.0, "date": "2024-01-02"}

    @pytest.mark.parametrize("amount", [None, "0", -1, "KES"])
    def test_amount_must_be_positive(self, cashier_session, backend, amount):
        with pytest.raises(ValidationError):
            sales_service.create_payment(cashier_session, 101, amount=amount)

        assert backend.calls_to("/retail-sales/101/payments") == []

    def test_payment_records(self, admin_session, backend):
        backend.on("GET", "/retail-sales/101/payments", body={"data": [{"id": 7}]})
        backend.on("GET", "/customer-payments/7", body={"data": {"id": 7}})
        backend.on("PUT", "/customer-payments/7", body={"data": {"id": 7, "amount": 300}})
        backend.on("DELETE", "/customer-payments/7", body={"message": "deleted"})

        assert sales_service.list_payments(admin_session, 101) == [{"id": 7}]
        assert sales_service.get_payment(admin_session, 7) == {"id": 7}
        assert sales_service.update_payment(admin_session, 7, {"amount": 300})["amount"] == 300
        assert sales_service.delete_payment(admin_session, 7) is True

    def test_payment_email_flag(self, cashier_session, backend):
        backend.on("POST", "/send-payment-email", body={"email_sent": True})

        assert sales_service.send_payment_email(cashier_session, retail_sale_id=101, amount="500", balance=0) is True
        assert backend.calls_to("/send-payment-email")[-1].body == {"retail_sale_id": 101, "amount": 500.0, "balance": 0.0}


class TestDispatchAndReceipts:

    def test_close_dispatch(self, cashier_session, backend):
        backend.on("POST", "/retail-sales/101/close-dispatch", body={"data": {"id": 101, "dispatch_status": "closed"}})

        result = sales_service.close_dispatch(cashier_session, 101, {"note": "Delivered"})

        assert result["dispatch_status"] == "closed"
        assert backend.calls_to("/retail-sales/101/close-dispatch")[-1].body == {"note": "Delivered"}

    def test_receipt_and_print(self, cashier_session, backend):
        backend.on("GET", "/retail-sales/101/receipt", body={"data": {"receipt_number": "R-0001"}})
        backend.on("POST", "/retail-sales/101/print", body={"ok": True, "message": "Sent to printer"})

        assert sales_service.get_receipt(cashier_session, 101) == {"receipt_number": "R-0001"}
        assert sales_service.print_receipt(cashier_session, 101)["ok"] is True


class TestExports:

    def test_csv_export_is_raw_bytes(self, admin_session, backend):
        backend.on("GET", "/retail-sales/export.csv", handler=csv_handler)

        content = sales_service.export_sales_csv(admin_session, date_from="2024-01-01", date_to="2024-01-01")

        assert content == b"id,total\n1,500\n"
        assert backend.calls_to("/retail-sales/export.csv")[-1].params == {"date_from": "2024-01-01", "date_to": "2024-01-01"}

    def test_pdf_export_is_raw_bytes(self, admin_session, backend):
        backend.on("GET", "/retail-sales/export-items.pdf", handler=lambda request: httpx.Response(
            200, content=b"%PDF-1.4", headers={"Content-Type": "application/pdf"},
        ))

        assert sales_service.export_sales_items_pdf(admin_session) == b"%PDF-1.4"

    def test_export_filenames(self):
        now = datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc)

        assert sales_service.export_filename("csv", now) == "retail_sales_2024-01-02.csv"
        assert sales_service.export_filename("pdf", now) == f"sales-report-{int(now.timestamp() * 1000)}.pdf"
        with pytest.raises(ValueError):
            sales_service.export_filename("xlsx", now)

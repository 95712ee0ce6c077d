from datetime import date

import pytest

from osot.entities.enums import (
    CotoStatus,
    EducationCategory,
    MembershipCategory,
    OrderStatus,
    PaymentStatus,
    Privilege,
    ProductStatus,
)
from osot.error_handler import AppError, ErrorCode
from osot.registration.states import RegistrationState, can_transition, is_terminal, progress_for
from osot.rules import order_rules
from osot.rules.education_rules import coto_registration_required, determine_education_category
from osot.rules.product_rules import (
    assert_status_transition,
    can_purchase,
    category_price_field,
    is_in_date_window,
    price_for_category,
)

TODAY = date(2025, 6, 15)


# ---------------------------------------------------------------------- #
# Orders
# ---------------------------------------------------------------------- #
def test_calculate_line_rounds_to_cents():
    amounts = order_rules.calculate_line(19.99, 3, 13)
    assert amounts.item_subtotal == 59.97
    assert amounts.tax_amount == 7.8
    assert amounts.item_total == 67.77


def test_line_errors_detects_inconsistent_amounts():
    good = {"selected_price": 10, "quantity": 2, "product_tax_rate": 13, "item_subtotal": 20, "tax_amount": 2.6, "item_total": 22.6}
    assert order_rules.line_errors(good) == []
    off_by_a_cent = dict(good, item_total=22.61)
    assert order_rules.line_errors(off_by_a_cent) == []
    wrong = dict(good, item_total=30)
    assert "item_total must equal item_subtotal + tax_amount" in order_rules.line_errors(wrong)
    too_many = dict(good, quantity=101, item_subtotal=1010, tax_amount=131.3, item_total=1141.3)
    assert any("cannot exceed" in e for e in order_rules.line_errors(too_many))


def test_order_totals_validation():
    lines = [
        {"quantity": 1, "item_subtotal": 100, "item_total": 113},
        {"quantity": 2, "item_subtotal": 50, "item_total": 56.5},
    ]
    totals = order_rules.order_totals(lines)
    assert totals == {"subtotal": 150.0, "total": 169.5}
    order_rules.validate_order_totals(totals["subtotal"], totals["total"], lines)

    with pytest.raises(AppError) as exc:
        order_rules.validate_order_totals(150, 170, lines)
    assert exc.value.code == ErrorCode.ORDER_TOTAL_MISMATCH
    with pytest.raises(AppError):
        order_rules.validate_order_totals(200, 169.5, lines)
    with pytest.raises(AppError):
        order_rules.validate_order_totals(0, 0, [])


def test_high_value_threshold():
    assert not order_rules.is_high_value(5000)
    assert order_rules.is_high_value(5000.01)


def test_order_status_transitions():
    order_rules.assert_order_transition(OrderStatus.DRAFT, OrderStatus.SUBMITTED)
    order_rules.assert_order_transition(OrderStatus.COMPLETED, OrderStatus.COMPLETED)
    with pytest.raises(AppError) as exc:
        order_rules.assert_order_transition(OrderStatus.CANCELLED, OrderStatus.DRAFT)
    assert exc.value.code == ErrorCode.INVALID_STATE_TRANSITION
    order_rules.assert_payment_transition(PaymentStatus.UNPAID, PaymentStatus.PENDING)
    with pytest.raises(AppError):
        order_rules.assert_payment_transition(PaymentStatus.UNPAID, PaymentStatus.PAID)


def test_order_permissions():
    assert order_rules.can_create_for(Privilege.OWNER, "me", "me")
    assert not order_rules.can_create_for(Privilege.OWNER, "me", "you")
    assert order_rules.can_create_for(Privilege.ADMIN, "me", "you")
    order = {"account_id": "me", "order_status": "DRAFT", "payment_status": "UNPAID"}
    assert order_rules.can_read(Privilege.OWNER, "me", order)
    assert not order_rules.can_read(Privilege.OWNER, "you", order)
    assert order_rules.can_update(Privilege.ADMIN, order)
    assert not order_rules.can_update(Privilege.OWNER, order)
    assert not order_rules.can_update(Privilege.ADMIN, dict(order, payment_status="PAID"))
    assert not order_rules.can_update(Privilege.ADMIN, dict(order, order_status="CANCELLED"))
    assert order_rules.can_delete(Privilege.MAIN)
    assert not order_rules.can_delete(Privilege.ADMIN)
    assert order_rules.same_organization("ABC ", "abc")
    assert not order_rules.same_organization(None, "abc")


# ---------------------------------------------------------------------- #
# Products
# ---------------------------------------------------------------------- #
def test_price_for_category_falls_back_to_general():
    product = {"general_price": 100.0, "otstu_price": 25.0, "otapr_price": None}
    assert category_price_field(MembershipCategory.OTA_PR) == "otapr_price"
    assert category_price_field(MembershipCategory.AFF_PREM) == "affprem_price"
    assert price_for_category(product, MembershipCategory.OT_STU) == 25.0
    assert price_for_category(product, MembershipCategory.OTA_PR) == 100.0
    assert price_for_category(product, None) == 100.0
    assert price_for_category({}, MembershipCategory.OT_STU) is None


def test_product_status_transitions():
    assert_status_transition(ProductStatus.DRAFT, ProductStatus.AVAILABLE)
    with pytest.raises(AppError) as exc:
        assert_status_transition(ProductStatus.DISCONTINUED, ProductStatus.AVAILABLE)
    assert exc.value.code == ErrorCode.INVALID_STATE_TRANSITION


def test_purchase_eligibility():
    product = {
        "product_status": ProductStatus.AVAILABLE,
        "product_category": 0,
        "general_price": 10,
        "inventory": 5,
        "start_date": "2025-01-01",
        "end_date": "2025-12-31",
    }
    assert is_in_date_window(product, TODAY)
    assert can_purchase(product, TODAY, has_active_membership=False)
    assert not can_purchase(product, date(2026, 1, 1), has_active_membership=False)
    assert not can_purchase(dict(product, inventory=0), TODAY, has_active_membership=False)
    assert not can_purchase(dict(product, product_status=ProductStatus.DRAFT), TODAY, has_active_membership=False)
    members_only = dict(product, active_membership_only=True)
    assert not can_purchase(members_only, TODAY, has_active_membership=False)
    assert can_purchase(members_only, TODAY, has_active_membership=True)


# ---------------------------------------------------------------------- #
# Education
# ---------------------------------------------------------------------- #
def test_education_category():
    assert determine_education_category(2026, None, TODAY) == EducationCategory.STUDENT
    assert determine_education_category(2025, date(2025, 9, 30), TODAY) == EducationCategory.NEW_GRADUATED
    assert determine_education_category(2024, None, TODAY) == EducationCategory.NEW_GRADUATED
    assert determine_education_category(2024, date(2025, 3, 31), TODAY) == EducationCategory.GRADUATED
    assert determine_education_category(2010, date(2025, 9, 30), TODAY) == EducationCategory.GRADUATED


def test_coto_registration_required():
    assert coto_registration_required(CotoStatus.GENERAL)
    assert coto_registration_required(CotoStatus.PROVISIONAL_TEMPORARY)
    assert not coto_registration_required(CotoStatus.STUDENT)


# ---------------------------------------------------------------------- #
# Registration states
# ---------------------------------------------------------------------- #
def test_registration_state_machine():
    S = RegistrationState
    assert can_transition(S.STAGED, S.EMAIL_VERIFICATION_PENDING)
    assert can_transition(S.FAILED, S.RETRY_PENDING)
    assert not can_transition(S.EMAIL_VERIFICATION_PENDING, S.COMPLETED)
    assert not can_transition(S.COMPLETED, S.FAILED)
    assert is_terminal(S.REJECTED)
    assert not is_terminal(S.PENDING_APPROVAL)
    assert progress_for(S.COMPLETED) == 100
    assert progress_for(S.FAILED) == 0

"""
Reference data kept by the contract owner and by hospitals.

Covers the ICD (diagnosis) and SUT (procedure) code tables, hospital and
doctor approval, per-hospital service prices and patients' pre-existing
conditions. The contract returns zeroed structs for unknown keys, so an
empty code on read means the entry does not exist.
"""

import datetime
import logging
from typing import Sequence, Union

from healthchain.exceptions import DecodeMismatch, NotFound
from healthchain.fetcher import format_ether, to_datetime
from healthchain.models import HospitalService, IcdCode, ServiceCategory, SutCode, WriteResult
from healthchain.service import _write_result, parse_ether

logger = logging.getLogger(__name__)

ICD_FIELDS = 5
SUT_FIELDS = 5
HOSPITAL_SERVICE_FIELDS = 5


def _struct(raw, label: str, size: int) -> Sequence:
    if not isinstance(raw, (list, tuple)) or len(raw) < size:
        raise DecodeMismatch(f"{label} tuple of {size} fields expected, got {raw!r}")
    return raw


def decode_icd_code(raw) -> IcdCode:
    code, description, requires_sut, is_pre_existing, coverage = _struct(raw, "ICD code", ICD_FIELDS)[:ICD_FIELDS]
    return IcdCode(
        code=code,
        description=description,
        requires_sut=bool(requires_sut),
        is_pre_existing=bool(is_pre_existing),
        coverage_percentage=int(coverage),
    )


def decode_sut_code(raw) -> SutCode:
    code, description, service_type, base_price, is_active = _struct(raw, "SUT code", SUT_FIELDS)[:SUT_FIELDS]
    try:
        category = ServiceCategory(int(service_type))
    except ValueError:
        raise DecodeMismatch(f"Unknown service type {service_type!r} for SUT code {code}")
    return SutCode(
        code=code,
        description=description,
        service_type=category,
        base_price=format_ether(base_price),
        is_active=bool(is_active),
    )


def decode_hospital_service(raw) -> HospitalService:
    hospital, sut_code, price, is_active, last_updated = _struct(
        raw, "Hospital service", HOSPITAL_SERVICE_FIELDS
    )[:HOSPITAL_SERVICE_FIELDS]
    return HospitalService(
        hospital=hospital,
        sut_code=sut_code,
        price=format_ether(price),
        is_active=bool(is_active),
        last_updated=to_datetime(last_updated),
    )


def _timestamp(value: Union[datetime.datetime, int]) -> int:
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return int(value.timestamp())
    return int(value)


class RegistryService:
    """Code tables, provider approval and hospital pricing."""

    def __init__(self, accessor):
        self.accessor = accessor

    def add_icd_code(self, code: str, description: str, requires_sut: bool, is_pre_existing: bool,
                     coverage_percentage: int) -> WriteResult:
        """
        Register a diagnosis code.

        Raises:
            ValueError: The code is empty or the coverage is outside 0..100
        """
        if not code:
            raise ValueError("ICD code must not be empty")
        if not 0 <= int(coverage_percentage) <= 100:
            raise ValueError("Coverage percentage must be between 0 and 100")
        tx_hash, receipt = self.accessor.call_write(
            "addICDCode", code, description, bool(requires_sut), bool(is_pre_existing), int(coverage_percentage)
        )
        logger.info(f"ICD code {code} added: tx={tx_hash}")
        return _write_result(tx_hash, receipt)

    def get_icd_code(self, code: str) -> IcdCode:
        icd = decode_icd_code(self.accessor.call_read("getICDCode", code, read_only=True))
        if not icd.code:
            raise NotFound("ICD code", code)
        return icd

    def add_sut_code(self, code: str, description: str, service_type: ServiceCategory, base_price) -> WriteResult:
        """Register a procedure code; ``base_price`` is in ether."""
        if not code:
            raise ValueError("SUT code must not be empty")
        tx_hash, receipt = self.accessor.call_write(
            "addSUTCode", code, description, int(ServiceCategory(service_type)), parse_ether(base_price)
        )
        logger.info(f"SUT code {code} added: tx={tx_hash}")
        return _write_result(tx_hash, receipt)

    def get_sut_code(self, code: str) -> SutCode:
        sut = decode_sut_code(self.accessor.call_read("getSUTCode", code, read_only=True))
        if not sut.code:
            raise NotFound("SUT code", code)
        return sut

    def set_hospital_approval(self, hospital: str, is_approved: bool) -> WriteResult:
        tx_hash, receipt = self.accessor.call_write("setHospitalApproval", hospital, bool(is_approved))
        return _write_result(tx_hash, receipt)

    def set_doctor_approval(self, doctor: str, is_approved: bool) -> WriteResult:
        tx_hash, receipt = self.accessor.call_write("setDoctorApproval", doctor, bool(is_approved))
        return _write_result(tx_hash, receipt)

    def add_hospital_service(self, sut_code: str, price) -> WriteResult:
        """Offer a procedure at the signing hospital; ``price`` is in ether."""
        tx_hash, receipt = self.accessor.call_write("addHospitalService", sut_code, parse_ether(price))
        return _write_result(tx_hash, receipt)

    def update_hospital_service_price(self, sut_code: str, price) -> WriteResult:
        tx_hash, receipt = self.accessor.call_write("updateHospitalServicePrice", sut_code, parse_ether(price))
        return _write_result(tx_hash, receipt)

    def get_hospital_service(self, hospital: str, sut_code: str) -> HospitalService:
        service = decode_hospital_service(
            self.accessor.call_read("getHospitalService", hospital, sut_code, read_only=True)
        )
        if not service.sut_code:
            raise NotFound("Hospital service", f"{sut_code} at {hospital}")
        return service

    def add_pre_existing_condition(self, patient: str, icd_code: str,
                                   diagnosis_date: Union[datetime.datetime, int]) -> WriteResult:
        """Record a diagnosis made before the patient's policy started.

        ``diagnosis_date`` is a datetime (naive values are taken as UTC) or
        a unix timestamp.
        """
        if not icd_code:
            raise ValueError("ICD code must not be empty")
        tx_hash, receipt = self.accessor.call_write(
            "addPreExistingCondition", patient, icd_code, _timestamp(diagnosis_date)
        )
        return _write_result(tx_hash, receipt)

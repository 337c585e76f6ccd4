"""Audit export.

Full traceability JSON for an invoice preview: every priced record with
the rate it used and why, every skipped record with its reason, and the
resulting shift summary.
"""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from pathlib import Path

from care_billing.models import CalculationResult


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and date values."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, date):
            return obj.isoformat()
        return super().default(obj)


def generate_audit_dict(result: CalculationResult) -> dict:
    """Build audit dictionary from a calculation result (no file I/O)."""
    records = []
    for rec in result.records:
        timing = rec.timing
        records.append({
            "work_record_id": rec.work_record_id,
            "shift_date": rec.shift_date.isoformat(),
            "shift_type": rec.shift_type,
            "worker": {"name": rec.worker_name, "role": rec.worker_role},
            "day": {
                "is_weekend": rec.is_weekend,
                "is_holiday": rec.is_holiday,
                "is_emergency": rec.is_emergency,
            },
            "rate": {
                "hourly_rate": rec.hourly_rate,
                "rate_type": rec.rate_type.value if rec.rate_type else None,
            },
            "hours": {
                "billable": rec.hours,
                "total": rec.total_hours,
                "break": rec.break_hours,
            },
            "timing": {
                "facility_id": timing.facility_id,
                "start_time": timing.start_time.isoformat(),
                "end_time": timing.end_time.isoformat(),
                "billable_hours": timing.billable_hours,
                "break_hours": timing.break_hours,
            } if timing is not None else None,
            "amount": rec.amount,
        })

    first, last = result.first_shift, result.last_shift
    return {
        "facility": {
            "id": result.facility.id,
            "is_temporary": result.facility.is_temporary,
            **result.facility.details(),
        },
        "records": records,
        "skipped": [
            {"work_record_id": s.work_record_id, "reason": s.reason.value}
            for s in result.skipped
        ],
        "shift_summary": {
            name: bucket.to_dict() for name, bucket in result.shift_summary.items()
        },
        "summary": {
            "total_records": result.total_records,
            "total_skipped": len(result.skipped),
            "total_amount": result.total_amount,
        },
        "date_range": {
            "first_shift": first.shift_date.isoformat() if first else None,
            "last_shift": last.shift_date.isoformat() if last else None,
        },
    }


def generate_audit(result: CalculationResult, output_path: str | Path) -> Path:
    """Generate audit JSON file from a calculation result."""
    output_path = Path(output_path)
    audit = generate_audit_dict(result)
    output_path.write_text(json.dumps(audit, indent=2, cls=DecimalEncoder), encoding='utf-8')
    return output_path

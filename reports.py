"""
Statistics for the dashboard and the reports page.
"""
from collections import Counter
from datetime import date
from typing import Any, Dict, List, Optional

from completeness import BUCKETS, completeness, completeness_bucket
from schemas import StatusValidasi, StudentRecord

UNKNOWN = "Tidak Diketahui"
NOT_WORKING = "tidak bekerja"

INCOME_ORDER = [
    "< Rp. 500.000",
    "Rp. 500.000-Rp.999.999",
    "Rp. 1.000.000-Rp.1.999.999",
    "Rp.2.000.000-Rp.4.999.999",
    "Rp.5.000.000-Rp.20.000.000",
    "> Rp.20.000.000",
    "Tidak Berpenghasilan",
]
LOW_INCOME = INCOME_ORDER[:2]
ORPHAN_ORDER = ["Yatim Piatu", "Yatim", "Piatu", "Tidak"]


def _order_index(order: List[str], value: str) -> int:
    return order.index(value) if value in order else len(order)


def _by_count(counter: Counter) -> List[Dict[str, Any]]:
    return [{"name": name, "total": total} for name, total in counter.most_common()]


def dashboard_stats(records: List[StudentRecord], today: Optional[date] = None) -> Dict[str, Any]:
    start_of_month = (today or date.today()).replace(day=1)
    status = Counter()
    gender = Counter()
    new_this_month = 0

    for record in records:
        if record.status_validasi in (StatusValidasi.VALID, StatusValidasi.RESIDU):
            status[record.status_validasi.value] += 1
        else:
            status[StatusValidasi.BELUM_DIVERIFIKASI.value] += 1
        if record.jenis_kelamin in ("Laki-laki", "Perempuan"):
            gender[record.jenis_kelamin] += 1
        if record.tanggal_registrasi and record.tanggal_registrasi >= start_of_month:
            new_this_month += 1

    return {
        "total": len(records),
        "valid": status["Valid"],
        "residu": status["Residu"],
        "unverified": status["Belum Diverifikasi"],
        "new_this_month": new_this_month,
        "gender": [
            {"name": "Laki-laki", "total": gender["Laki-laki"]},
            {"name": "Perempuan", "total": gender["Perempuan"]},
        ],
    }


def completeness_summary(records: List[StudentRecord]) -> Dict[str, int]:
    counts = Counter(completeness_bucket(completeness(record)) for record in records)
    return {bucket: counts[bucket] for bucket in BUCKETS}


def report_aggregates(records: List[StudentRecord]) -> Dict[str, Any]:
    district = Counter()
    village = Counter()
    occupation = Counter()
    trend = Counter()
    kip = Counter({"Punya KIP": 0, "Tidak Punya KIP": 0})
    orphan = Counter()
    income = Counter()
    underprivileged = 0

    for record in records:
        district[record.kecamatan or UNKNOWN] += 1
        village[record.nama_kelurahan_desa or UNKNOWN] += 1

        for job in (record.pekerjaan_ayah, record.pekerjaan_ibu):
            if job and job.lower() != NOT_WORKING:
                occupation[job] += 1

        if record.tanggal_registrasi:
            trend[str(record.tanggal_registrasi.year)] += 1

        kip["Punya KIP" if record.punya_kip == "Ya" else "Tidak Punya KIP"] += 1
        orphan[record.status_anak or "Tidak"] += 1

        # Household income is judged on the father's income only.
        father_income = record.penghasilan_ayah
        if father_income in LOW_INCOME:
            underprivileged += 1
        if father_income and father_income != "Tidak Berpenghasilan":
            income[father_income] += 1

    return {
        "district": _by_count(district),
        "village": _by_count(village),
        "parent_occupation": [{"name": n, "value": v} for n, v in occupation.most_common(7)],
        "registration_trend": [{"name": y, "total": trend[y]} for y in sorted(trend, key=int)],
        "kip": [{"name": n, "value": kip[n]} for n in ("Punya KIP", "Tidak Punya KIP")],
        "orphan_status": [
            {"name": n, "value": orphan[n]}
            for n in sorted(orphan, key=lambda n: _order_index(ORPHAN_ORDER, n))
        ],
        "underprivileged": [
            {"name": "Kurang Mampu", "value": underprivileged},
            {"name": "Mampu", "value": len(records) - underprivileged},
        ],
        "parent_income": [
            {"name": n, "total": income[n]}
            for n in sorted(income, key=lambda n: _order_index(INCOME_ORDER, n))
        ],
    }

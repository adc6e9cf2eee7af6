from typing import Any, Dict, Iterable, List


DIAS_SEMANA = {
    1: "Lunes",
    2: "Martes",
    3: "Miércoles",
    4: "Jueves",
    5: "Viernes",
    6: "Sábado",
    7: "Domingo",
}


def dia_nombre(dia: int) -> str:
    return DIAS_SEMANA.get(dia, "")


def group_by_day(rows: Iterable[Dict[str, Any]], key: str = "horarios") -> List[Dict[str, Any]]:
    """Nest flat rows under their weekday, Monday first.

    Rows keep their incoming order inside each day.
    """
    grouped: Dict[int, Dict[str, Any]] = {}
    for row in rows:
        dia = row["dia_semana"]
        bucket = grouped.get(dia)
        if bucket is None:
            bucket = {"dia_semana": dia, "dia_nombre": dia_nombre(dia), key: []}
            grouped[dia] = bucket
        bucket[key].append(row)
    return [grouped[dia] for dia in sorted(grouped)]


def group_by_week(rows: Iterable[Dict[str, Any]], key: str = "contenidos") -> List[Dict[str, Any]]:
    grouped: Dict[int, Dict[str, Any]] = {}
    for row in rows:
        semana = row["semana"]
        grouped.setdefault(semana, {"semana": semana, key: []})[key].append(row)
    return [grouped[semana] for semana in sorted(grouped)]

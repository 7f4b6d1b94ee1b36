class WeightConverter:
    """Utility for converting between kg and lb."""

    KG_TO_LB = 2.20462

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def convert(value: float, from_unit: str, to_unit: str) -> float:
        if from_unit not in ("kg", "lb") or to_unit not in ("kg", "lb"):
            raise ValueError("unit must be kg or lb")
        if from_unit == to_unit:
            return round(value, 2)
        if from_unit == "kg":
            return WeightConverter.kg_to_lb(value)
        return WeightConverter.lb_to_kg(value)

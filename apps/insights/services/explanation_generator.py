from typing import Dict, Optional

from apps.insights.core.models import EnhancedColumnStats


def describe_correlation(r: float) -> str:
    strength = abs(r)
    if strength >= 0.7:
        label = "strong"
    elif strength >= 0.4:
        label = "moderate"
    else:
        label = "weak"
    return f"{label} {'positive' if r > 0 else 'negative'}"


class ExplanationGenerator:
    def generate(
        self,
        chart_type: str,
        fields: Dict,
        columns_info: Dict[str, EnhancedColumnStats],
        extra: Optional[Dict] = None,
    ) -> str:
        """
        One or two sentences on why a chart was emitted. Missing-value
        warnings are appended for any charted column more than 10% empty.
        """
        extra = extra or {}
        explanation = {"reason": "", "insights": [], "warnings": []}

        if chart_type == "scatter":
            explanation = self._explain_scatter(fields, extra, explanation)
        elif chart_type in ["line", "area"]:
            explanation = self._explain_line(fields, columns_info, explanation)
        elif chart_type in ["pie", "bar"]:
            explanation = self._explain_categorical(
                chart_type, fields, columns_info, explanation
            )
        elif chart_type == "histogram":
            explanation = self._explain_histogram(fields, columns_info, extra, explanation)
        elif chart_type == "heatmap":
            explanation["reason"] = (
                f"Pairwise Pearson correlations between "
                f"{len(fields.get('columns', []))} numeric columns"
            )
        else:
            explanation["reason"] = f"{chart_type.title()} chart of the data"

        for field_val in fields.values():
            names = field_val if isinstance(field_val, list) else [field_val]
            for name in names:
                col = columns_info.get(name) if isinstance(name, str) else None
                if col is None or col.total_count == 0:
                    continue
                missing = col.null_count / col.total_count
                if missing > 0.1:
                    explanation["warnings"].append(
                        f"{name} has {missing:.0%} missing values"
                    )

        parts = [explanation["reason"]] + explanation["insights"]
        text = ". ".join(p for p in parts if p) + "."
        if explanation["warnings"]:
            text += " Note: " + "; ".join(dict.fromkeys(explanation["warnings"])) + "."
        return text

    def _explain_scatter(self, fields, extra, explanation):
        x, y = fields.get("x"), fields.get("y")
        r = extra["correlation"]
        explanation["reason"] = (
            f"Strongest linear relationship among numeric columns: "
            f"{x} vs {y} (r = {r:.2f})"
        )
        explanation["insights"].append(f"The correlation is {describe_correlation(r)}")
        return explanation

    def _explain_line(self, fields, columns_info, explanation):
        x_col, y_col = fields.get("x"), fields.get("y")
        if isinstance(y_col, list) and len(y_col) > 1:
            explanation["reason"] = (
                f"{len(y_col)} numeric series over {x_col} in date order"
            )
        else:
            y_name = y_col[0] if isinstance(y_col, list) else y_col
            explanation["reason"] = f"Trend of {y_name} over {x_col}"

        x_info = columns_info.get(x_col)
        if x_info is not None and x_info.date_range is not None:
            explanation["insights"].append(f"Time span: {x_info.date_range.span} days")
        return explanation

    def _explain_categorical(self, chart_type, fields, columns_info, explanation):
        cat_col = fields.get("x")
        cat_info = columns_info.get(cat_col)
        if cat_info is None:
            return explanation

        if cat_info.inferred_type == "boolean":
            explanation["reason"] = f"Split of true and false values in {cat_col}"
            return explanation

        if chart_type == "pie":
            explanation["reason"] = (
                f"Proportional breakdown of {cat_col} "
                f"({cat_info.unique_values} categories)"
            )
        else:
            explanation["reason"] = (
                f"Frequency of the {cat_info.unique_values} {cat_col} values"
            )

        top = cat_info.top_categories or []
        if top and top[0].percentage > 0.5:
            explanation["warnings"].append(
                f"Data is imbalanced ({top[0].percentage:.0%} in one category)"
            )
        return explanation

    def _explain_histogram(self, fields, columns_info, extra, explanation):
        x_col = fields.get("x")
        explanation["reason"] = (
            f"Distribution of {x_col} across {extra.get('bins', 0)} bins"
        )
        x_info = columns_info.get(x_col)
        if x_info is not None and x_info.outliers is not None and x_info.outliers.count:
            explanation["insights"].append(
                f"{x_info.outliers.count} outliers detected"
            )
        return explanation

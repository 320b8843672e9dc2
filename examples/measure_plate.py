import ezflat


def main() -> None:
    report = ezflat.analyze_file("examples/data/bracket.dxf")
    print(f"outer perimeter: {report.outer_perimeter_length:.2f} mm")
    for hole in report.holes:
        kind = "round" if hole.is_round(report.circularity_threshold) else "feature"
        print(f"hole: {hole.length:.2f} mm ({kind}, ~{hole.diameter:.2f} mm across)")
    print(f"total cut length: {report.total_cut_length:.2f} mm")
    if report.bends.count:
        print(f"bends: {report.bends.count} (common: {report.bends.common_angles()})")


if __name__ == "__main__":
    main()

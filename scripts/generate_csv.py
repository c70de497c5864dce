"""Generate sample company CSV files for testing the importer."""
import csv
import random
import sys

COLUMNS = [
    "companyId",
    "organisationNumber",
    "name",
    "email",
    "location.municipality",
    "location.county",
    "financials.revenue",
    "financials.currency",
    "info.numberOfEmployees",
    "info.proffIndustries",
]


def generate_csv(num_rows: int, output_file: str, missing_id_ratio: float = 0.0) -> None:
    """
    Generate a CSV file with random company data.

    Args:
        num_rows: Number of company rows to generate
        output_file: Output CSV file path
        missing_id_ratio: Share of rows written without a companyId
    """
    municipalities = ["Oslo", "Bergen", "Trondheim", "Stavanger", "Tromsø", "Drammen"]
    counties = ["Oslo", "Vestland", "Trøndelag", "Rogaland", "Troms", "Viken"]
    industries = [
        "Consulting",
        "Software",
        "Retail",
        "Construction",
        "Logistics",
        "Healthcare",
    ]
    suffixes = ["AS", "ASA", "Holding AS", "Group AS"]

    with open(output_file, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(COLUMNS)

        for i in range(num_rows):
            org_number = f"{900000000 + i}"
            company_id = "" if random.random() < missing_id_ratio else f"comp-{i + 1:08d}"
            industry = random.choice(industries)
            place = random.randrange(len(municipalities))

            writer.writerow(
                [
                    company_id,
                    org_number,
                    f"{industry} Partners {i + 1} {random.choice(suffixes)}",
                    f"post@company{i + 1}.no",
                    municipalities[place],
                    counties[place],
                    f"{random.randint(100, 50_000_000)}",
                    "NOK",
                    f"{random.randint(1, 500)}",
                    industry,
                ]
            )

            # Print progress every 10,000 rows
            if (i + 1) % 10000 == 0:
                print(f"Generated {i+1:,} rows...")

    print(f"✅ Successfully generated {num_rows:,} companies in {output_file}")


def main():
    """Main function to parse arguments and generate CSV."""
    if len(sys.argv) < 2:
        print("Usage: python generate_csv.py <num_rows> [output_file] [missing_id_ratio]")
        print("Example: python generate_csv.py 50000 sample_50k.csv 0.01")
        sys.exit(1)

    num_rows = int(sys.argv[1])
    output_file = sys.argv[2] if len(sys.argv) > 2 else f"sample_{num_rows}.csv"
    missing_id_ratio = float(sys.argv[3]) if len(sys.argv) > 3 else 0.0

    print(f"Generating CSV with {num_rows:,} rows...")
    generate_csv(num_rows, output_file, missing_id_ratio)


if __name__ == "__main__":
    main()

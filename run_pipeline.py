import subprocess
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parent


def _run_script(script: str, extra_args: list[str] | None = None) -> None:
    cmd = [sys.executable, str(ROOT / script)]
    if extra_args:
        cmd.extend(extra_args)
    print(f"\nRunning: {' '.join(cmd)}")
    subprocess.run(cmd, check=True)


def run_simulation() -> None:
    lenient = input("Fall back to the analytical MU model on unknown model names? (y/n) [n]: ").strip().lower()
    sim_args = ["--lenient-model"] if lenient in ("y", "yes") else []
    _run_script("main.py", sim_args)
    print("\nSimulation completed.")


def run_charts() -> None:
    _run_script("analytics/result_charts.py")
    print("\nCharts rendered.")


def main() -> None:
    while True:
        print("\nChoose step:")
        print("1) Run simulation")
        print("2) Render result charts")
        print("3) Exit")
        choice = input("Enter 1, 2 or 3: ").strip()

        if choice == "1":
            run_simulation()
        elif choice == "2":
            run_charts()
        elif choice == "3":
            print("Exiting pipeline menu.")
            break
        else:
            print("Invalid choice. Please select 1, 2 or 3.")


if __name__ == "__main__":
    main()

import sys
import time

import pyart

# Import our module
from radar_ppi import (
    composite,
    get_radar_info,
    make_ppi,
    volume_from_radar,
)


def main():
    print("=" * 60)
    print("RADAR_PPI - PPI AND COMPOSITE EXAMPLE")
    print("=" * 60)

    files = sys.argv[1:]
    if not files:
        print("Usage: python composite_example.py RADAR_FILE [RADAR_FILE ...]")
        return

    # PPI configuration
    cellsize = 500.0
    range_max = 100000.0
    elangle = 0.5
    print("PPI configuration:")
    print(f"  Cell size: {cellsize} m")
    print(f"  Range max: {range_max} m")
    print(f"  Elevation: {elangle} deg")

    ppis = []
    for file in files:
        radar = pyart.io.read(file)
        info = get_radar_info(radar)
        print(f"Radar {info['radar_name']}: {info['nsweeps']} sweeps, fields {info['fields']}")

        volume = volume_from_radar(radar, fields=["DBZH"])
        scan = volume.get_scan(elangle)

        t0 = time.time()
        ppi = make_ppi(scan, cellsize=cellsize, range_max=range_max)
        print(f"  PPI built in {time.time() - t0:.2f}s")
        print(ppi)
        print(f"  Cell states: {ppi.layer('DBZH').count()}")
        ppis.append(ppi)

    t0 = time.time()
    merged = composite(ppis, param="DBZH", cells_dim=(400, 400), n_workers=min(4, len(ppis)))
    print(f"Composite built in {time.time() - t0:.2f}s")
    print(merged)
    print(f"  Bounding box: {merged.bbox.as_dict()}")
    print(f"  Cell states: {merged.layer('DBZH').count()}")


if __name__ == "__main__":
    main()

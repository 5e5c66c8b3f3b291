#!/usr/bin/env python3

import glob
import os
import sys

# Allow running this script directly (sys.path[0] is examples/).
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import facesvg as fsvg


def generate(out_dir: str):
    os.makedirs(out_dir, exist_ok=True)
    faces_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "faces")

    for path in sorted(glob.glob(os.path.join(faces_dir, "*.json"))):
        stem = os.path.splitext(os.path.basename(path))[0]
        payload = fsvg.load_payload(path)
        faces = fsvg.faces_from_payload(payload)

        # One sheet with everything, one sheet per face, and an oriented variant.
        sheet = fsvg.ExportConfig(title=str(payload.get("title") or stem))
        fsvg.export_faces(faces, sheet, os.path.join(out_dir, f"{stem}.svg"))

        per_face = fsvg.ExportConfig(title=sheet.title, export="per_face_svgs")
        fsvg.export_faces(faces, per_face, os.path.join(out_dir, f"{stem}_faces"))

        oriented = fsvg.ExportConfig(title=sheet.title, orient_loops=True, layout_width=4.0, units="in")
        fsvg.export_faces(faces, oriented, os.path.join(out_dir, f"{stem}_oriented.svg"))


if __name__ == "__main__":
    generate(os.path.join(os.path.dirname(os.path.abspath(__file__)), "out"))

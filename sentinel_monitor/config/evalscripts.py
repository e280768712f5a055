"""
Sentinel Monitor — Evalscripts

Band-selection scripts sent to the Sentinel Hub statistics and process
APIs. Each statistics script emits the index band(s) plus a ``dataMask``
that drops clouds, shadows and no-data pixels (Scene Classification, SCL).
"""

NDSI = """
//VERSION=3
function setup() {
  return {
    input: [{ bands: ["B03", "B11", "SCL"], units: "DN" }],
    output: [
      { id: "index", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1, sampleType: "UINT8" }
    ]
  };
}
function evaluatePixel(sample) {
  let ndsi = (sample.B03 - sample.B11) / (sample.B03 + sample.B11);
  const isCloud = [3, 8, 9, 10].includes(sample.SCL);
  const isEmpty = sample.B03 == 0 && sample.B11 == 0;
  return { index: [ndsi], dataMask: [isCloud || isEmpty ? 0 : 1] };
}
"""

# Water (6), vegetation (4) and not-vegetated (5) are kept so thick
# surface blooms are not masked out as land.
NDCI = """
//VERSION=3
function setup() {
  return {
    input: [{ bands: ["B04", "B05", "SCL"], units: "DN" }],
    output: [
      { id: "index", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1, sampleType: "UINT8" }
    ]
  };
}
function evaluatePixel(sample) {
  if ([4, 5, 6].includes(sample.SCL)) {
    let ndci = (sample.B05 - sample.B04) / (sample.B05 + sample.B04);
    return { index: [ndci], dataMask: [1] };
  }
  return { index: [0], dataMask: [0] };
}
"""

NDVI_NDMI = """
//VERSION=3
function setup() {
  return {
    input: [{ bands: ["B04", "B08", "B11", "SCL"], units: "DN" }],
    output: [
      { id: "INDICES", bands: 2, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1, sampleType: "UINT8" }
    ]
  };
}
function evaluatePixel(sample) {
  if (![4, 5].includes(sample.SCL)) {
    return { INDICES: [NaN, NaN], dataMask: [0] };
  }
  let ndvi = (sample.B08 - sample.B04) / (sample.B08 + sample.B04);
  let ndmi = (sample.B08 - sample.B11) / (sample.B08 + sample.B11);
  return { INDICES: [ndvi, ndmi], dataMask: [1] };
}
"""

# VV backscatter in dB
RADAR = """
//VERSION=3
function setup() {
  return {
    input: ["VV", "dataMask"],
    output: [
      { id: "index", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1, sampleType: "UINT8" }
    ]
  };
}
function evaluatePixel(sample) {
  if (sample.dataMask === 0) {
    return { index: [NaN], dataMask: [0] };
  }
  const db = 20 * Math.log10(sample.VV);
  if (!isFinite(db)) {
    return { index: [NaN], dataMask: [0] };
  }
  return { index: [db], dataMask: [1] };
}
"""

TRUE_COLOR = """
//VERSION=3
function setup() {
  return {
    input: [{ bands: ["B04", "B03", "B02", "SCL"], units: "DN" }],
    output: { bands: 4, sampleType: "UINT8" }
  };
}
function evaluatePixel(sample) {
  if ([1, 3, 6, 8, 9, 10, 11].includes(sample.SCL)) {
    return [0, 0, 0, 0];
  }
  const gain = 2.5;
  const r = Math.max(0, Math.min(255, 255 * (gain * sample.B04 / 3000)));
  const g = Math.max(0, Math.min(255, 255 * (gain * sample.B03 / 3000)));
  const b = Math.max(0, Math.min(255, 255 * (gain * sample.B02 / 3000)));
  return [r, g, b, 255];
}
"""

EVALSCRIPTS = {
    "NDSI": NDSI,
    "NDCI": NDCI,
    "NDVI/NDMI": NDVI_NDMI,
    "RADAR": RADAR,
}
